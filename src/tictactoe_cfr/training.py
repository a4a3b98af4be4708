"""
Resumable training loop.

Training only ever continues on top of a saved session: the checkpoint is
written every `save_every` iterations and once more at the end.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .cfr import CONTEMPT_ITERATIONS, contempt_schedule
from .checkpoint import load_or_build, save
from .game import Board
from .session import TrainingSession
from .tracking import log_metrics, log_params, maybe_mlflow_run

DESIRED_ITERATIONS = 40000
SAVE_EVERY = 1000


@dataclass
class TrainArgs:
    checkpoint: Path
    iterations: int = DESIRED_ITERATIONS
    contempt_iterations: int = CONTEMPT_ITERATIONS
    save_every: int = SAVE_EVERY
    tracking: bool = False
    log_dir: Optional[Path] = None


def run_training(args: TrainArgs, starts: Optional[Iterable[Board]] = None) -> TrainingSession:
    if args.save_every < 1:
        raise ValueError(f"save_every must be positive, got {args.save_every}")
    session = load_or_build(args.checkpoint, starts)

    with maybe_mlflow_run(args.tracking, run_name="cfr_train", log_dir=args.log_dir):
        log_params({
            "iterations": args.iterations,
            "contempt_iterations": args.contempt_iterations,
            "save_every": args.save_every,
            "resumed_at": session.trained_iterations,
        })
        while session.trained_iterations < args.iterations:
            iteration = session.trained_iterations
            contempt = contempt_schedule(iteration, args.contempt_iterations)
            logging.info("training: iteration %d (contempt %.4f)", iteration, contempt)
            util = session.train(contempt)
            logging.info("average utility: %.6f", util)
            log_metrics({"average_utility": util, "contempt": contempt},
                        step=session.trained_iterations)

            if session.trained_iterations % args.save_every == 0:
                save(session, args.checkpoint)
        save(session, args.checkpoint)
    return session
