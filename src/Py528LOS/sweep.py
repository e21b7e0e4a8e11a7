# -*- coding: utf-8 -*-
# pylint: disable=invalid-name,too-many-arguments,too-many-locals
"""
Batch evaluation of the line-of-sight loss over parameter grids.

Every combination of the input values is an independent request, so the
grid is spread over a process pool and collected into a pandas DataFrame,
one row per request.

Usage:
    df = bt_loss_sweep(f_ghz, h_1_km, h_2_km, q, d_km)
"""
import itertools
import logging
from concurrent.futures import ProcessPoolExecutor

import numpy as np
import pandas as pd

from Py528LOS import P528LOS

logger = logging.getLogger(__name__)

INPUT_COLUMNS = ["f_ghz", "h_1_km", "h_2_km", "q", "d_km"]
LOSS_COLUMNS = ["A_db", "A_fs_db", "A_a_db", "A_los_db", "A_y_db"]


def _as_values(x):
    """Scalars become a one-element list, iterables are kept in order"""
    return [float(v) for v in np.atleast_1d(np.asarray(x, dtype=float)).ravel()]


def _evaluate(args, env=P528LOS.DEFAULT_ENVIRONMENT):
    """
    Evaluate one request. Errors raised by the model are recorded in the
    returned row instead of stopping the sweep.
    """
    f_ghz, h_1_km, h_2_km, q, d_km = args

    row = dict(zip(INPUT_COLUMNS, args))

    try:
        result = P528LOS.bt_loss(f_ghz, h_1_km, h_2_km, q, d_km, env)
    except P528LOS.P528Error as err:
        row.update({col: np.nan for col in LOSS_COLUMNS})
        row["propagation_mode"] = P528LOS.Const.PROP_MODE__NOT_SET
        row["converged"] = False
        row["error"] = type(err).__name__
        return row

    for col in LOSS_COLUMNS:
        row[col] = getattr(result, col)
    row["propagation_mode"] = result.propagation_mode
    row["converged"] = result.converged
    row["error"] = None

    return row


def bt_loss_sweep(f_ghz, h_1_km, h_2_km, q, d_km, max_workers=None,
                  env=P528LOS.DEFAULT_ENVIRONMENT):
    """
    Compute the basic transmission loss for every combination of inputs.

    Parameters:
    -----------
    f_ghz : float or array_like
        Frequency, in GHz
    h_1_km : float or array_like
        Height of the low terminal, in km
    h_2_km : float or array_like
        Height of the high terminal, in km
    q : float or array_like
        Time percentile, 0 < q < 1
    d_km : float or array_like
        Path distance, in km
    max_workers : int, optional
        Number of worker processes. 1 evaluates in the calling process,
        None lets the executor choose.
    env : Environment
        Physical constants

    Returns:
    --------
    df : pandas.DataFrame
        One row per combination, in the order of itertools.product over
        (f_ghz, h_1_km, h_2_km, q, d_km), with the inputs, the loss
        components in dB, the propagation mode, the convergence flag and
        the error class name (missing, NaN or None, when the request succeeded)
    """
    grid = list(itertools.product(_as_values(f_ghz), _as_values(h_1_km),
                                  _as_values(h_2_km), _as_values(q),
                                  _as_values(d_km)))

    logger.debug("Evaluating %d requests with max_workers=%s", len(grid), max_workers)

    if max_workers == 1:
        rows = [_evaluate(args, env) for args in grid]
    else:
        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(_evaluate, args, env) for args in grid]
            try:
                rows = [future.result() for future in futures]
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

    df = pd.DataFrame(rows, columns=INPUT_COLUMNS + LOSS_COLUMNS +
                      ["propagation_mode", "converged", "error"])

    n_failed = int(df["error"].notna().sum())
    if n_failed:
        logger.info("%d of %d requests failed", n_failed, len(df))

    return df
