"""
Optional MLflow tracking for training and export runs.

mlflow is imported lazily and only inside an active run. Tracking problems are
logged and never stop training.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

_active = False


@contextmanager
def maybe_mlflow_run(enabled: bool, run_name: str, log_dir: Optional[Path] = None) -> Iterator[None]:
    global _active
    if not enabled:
        yield None
        return
    try:
        import mlflow  # type: ignore

        if log_dir is not None:
            mlflow.set_tracking_uri((Path(log_dir).resolve() / "mlruns").as_uri())
        run = mlflow.start_run(run_name=run_name)
    except Exception as e:
        logging.warning("MLflow tracking unavailable (%s); continuing without it", e)
        yield None
        return
    _active = True
    try:
        with run:
            yield None
    finally:
        _active = False


def _send(method: str, *args, **kwargs) -> None:
    if not _active:
        return
    try:
        import mlflow  # type: ignore

        getattr(mlflow, method)(*args, **kwargs)
    except Exception as e:
        logging.debug("mlflow.%s failed: %s", method, e)


def log_params(params: Dict[str, object]) -> None:
    _send("log_params", params)


def log_metrics(metrics: Dict[str, float], step: Optional[int] = None) -> None:
    """Per-iteration values such as average utility and contempt."""
    _send("log_metrics", metrics, step=step)


def log_artifact(path: Path, artifact_path: Optional[str] = None) -> None:
    _send("log_artifact", str(path), artifact_path=artifact_path)
