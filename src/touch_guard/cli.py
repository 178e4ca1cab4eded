from __future__ import annotations
import argparse
import asyncio
import signal
import sys
from typing import Optional

try:
    import cv2  # type: ignore
except ImportError:  # pragma: no cover
    cv2 = None

from .config import load_config, GuardConfig
from .errors import DeviceUnavailableError, EmptyStoreError, TouchGuardError
from .http_server import SharedState, start_http_server
from .logging_utils import log
from .models import ClassificationResult, Label
from .session import Session, open_session

EXIT_NO_CAMERA = 5
EXIT_MONITORING_FAILED = 4
TRAINING_PROMPTS = [
    (Label.NOT_TOUCHED, "Don't touch your face, then press Enter to train "),
    (Label.TOUCHED, 'Touch your face (keep your hand there), then press Enter to train '),
]


def parse_args(argv=None):
    p = argparse.ArgumentParser(description='Face-touch guard: learns your face-touch gesture and alerts on it')
    p.add_argument('--config', default='config.yaml')
    p.add_argument('--preview', action='store_true', help='Show the camera feed; red border while touched')
    p.add_argument('--log-level', choices=['debug', 'info', 'warn', 'error'], help='Override config log_level')
    p.add_argument('--examples', type=int, default=None, help='Examples per label (default from config)')
    p.add_argument('--synthetic', action='store_true', help='Use generated frames instead of a camera')
    p.add_argument('--run-seconds', type=float, default=None)
    p.add_argument('--http-port', type=int, default=None)
    p.add_argument('--http-host', default='127.0.0.1')
    p.add_argument('--no-prompt', action='store_true', help='Train without waiting for Enter between labels')
    return p.parse_args(argv)


def _preview_listener(session: Session, stop: asyncio.Event):
    def show(touched: bool, result: Optional[ClassificationResult]) -> None:
        frame = getattr(session.source, 'last_frame', None)
        if frame is None or not session.cfg.preview:
            return
        vis = frame.copy()
        if touched:
            h, w = vis.shape[:2]
            cv2.rectangle(vis, (0, 0), (w - 1, h - 1), (0, 0, 255), 12)
        if result is not None:
            txt = f'{result.label.name} {result.confidence(result.label):.2f}'
            cv2.putText(vis, txt, (10, 28), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (0, 255, 0), 2, cv2.LINE_AA)
        try:
            cv2.imshow('touch-guard', vis)
            if cv2.waitKey(1) & 0xFF == 27:
                stop.set()
        except cv2.error:
            log('Disabling preview (no GUI support).', 'warn', cfg_level=session.cfg.log_level)
            session.cfg.preview = False
    return show


async def _train_all(session: Session, args) -> None:
    loop = asyncio.get_running_loop()
    for label, prompt in TRAINING_PROMPTS:
        if not args.no_prompt:
            await loop.run_in_executor(None, input, f'{prompt}[{label.name}]: ')
        if args.synthetic:
            session.source.touching = label is Label.TOUCHED  # type: ignore[attr-defined]
        await session.request_training(label, args.examples)
    if args.synthetic:
        session.source.touching = None  # type: ignore[attr-defined]


async def run(args, cfg: GuardConfig) -> int:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    def handle_sigint(sig, frame):  # type: ignore
        loop.call_soon_threadsafe(stop.set)
    previous_handler = signal.signal(signal.SIGINT, handle_sigint)
    exit_code = 0

    try:
        async with open_session(cfg, synthetic=args.synthetic) as session:
            server = None
            if args.http_port is not None:
                server = start_http_server(args.http_host, args.http_port, SharedState(session, loop))
            if cfg.preview and cv2 is not None:
                session.listeners.append(_preview_listener(session, stop))
            task: Optional[asyncio.Task] = None
            try:
                if server is None or not args.no_prompt:
                    await _train_all(session, args)
                    task = session.request_inference_start()
                    log('Monitoring; press Ctrl-C to stop', cfg_level=cfg.log_level)
                waiter = asyncio.ensure_future(stop.wait())
                watched = {waiter} if task is None else {waiter, task}
                await asyncio.wait(watched, timeout=args.run_seconds, return_when=asyncio.FIRST_COMPLETED)
                waiter.cancel()
                if task is not None and task.done() and not task.cancelled() and task.exception() is not None:
                    exit_code = EXIT_MONITORING_FAILED
            finally:
                if server is not None:
                    server.shutdown()
                if cfg.preview and cv2 is not None:
                    cv2.destroyAllWindows()
            log(f'Session summary: {session.status()}', 'debug', cfg_level=cfg.log_level)
    except DeviceUnavailableError as e:
        log(f'Camera unavailable: {e}', 'error', cfg_level=cfg.log_level)
        return EXIT_NO_CAMERA
    except EmptyStoreError as e:
        log(str(e), 'error', cfg_level=cfg.log_level)
        return 3
    except TouchGuardError as e:
        log(f'Training aborted: {e}', 'error', cfg_level=cfg.log_level)
        return 2
    finally:
        signal.signal(signal.SIGINT, previous_handler)
    return exit_code


def main(argv=None):
    args = parse_args(argv)
    cfg = load_config(args.config)
    if args.preview:
        cfg.preview = True
    if getattr(args, 'log_level', None):
        cfg.log_level = args.log_level
    if args.examples is not None and args.examples <= 0:
        log('--examples must be positive', 'error', cfg_level=cfg.log_level)
        sys.exit(2)
    sys.exit(asyncio.run(run(args, cfg)))


if __name__ == '__main__':  # pragma: no cover
    main()
