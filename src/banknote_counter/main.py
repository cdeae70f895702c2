"""Main entry point for the banknote counter.

This module orchestrates:
1. Camera pipeline (frame grabbing, classification, scan state machine, speech)
2. API server (FastAPI with REST and WebSocket endpoints)

The pipeline runs in its own thread. Scan timers are polled by that
thread between frames, so the state machine never needs a lock.
"""

import argparse
import logging
import signal
import sys
import threading
from typing import Optional, Union

import uvicorn

from .api.server import app, set_pipeline_running
from .config import get_config
from .pipeline.announcer import SpeechAnnouncer, create_announcer
from .pipeline.classifier import TeachableMachineClassifier
from .pipeline.grabber import FrameGrabber
from .pipeline.scanner import ScanStateMachine
from .pipeline.timers import PolledTimerService
from .shared.memory import get_shared_memory

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global flag for graceful shutdown
_shutdown_event = threading.Event()


def run_pipeline(source: Optional[Union[int, str]] = None) -> None:
    """Run the camera scanning pipeline.

    This function:
    1. Grabs frames from the camera
    2. Classifies each frame with the Teachable Machine model
    3. Fires any due scan timers
    4. Feeds the predictions to the scan state machine

    Args:
        source: Camera index, URL or file path. If None, uses config.
    """
    reset_requested = threading.Event()
    announcer = create_announcer()
    memory = get_shared_memory()
    reset_hook = reset_requested.set
    machine: Optional[ScanStateMachine] = None

    try:
        logger.info("Initializing pipeline components...")

        grabber = FrameGrabber(source=source)
        classifier = TeachableMachineClassifier()
        timers = PolledTimerService()
        machine = ScanStateMachine(timers=timers, announcer=announcer)

        memory.add_reset_hook(reset_hook)
        machine.start_session()
        set_pipeline_running(True)
        logger.info(f"Starting pipeline for source: {grabber.source}")

        for frame in grabber.frames():
            if _shutdown_event.is_set():
                logger.info("Shutdown requested, stopping pipeline")
                break

            if reset_requested.is_set():
                reset_requested.clear()
                machine.start_session()

            timers.poll()

            try:
                predictions = classifier.predict(frame.image)
            except (ValueError, RuntimeError) as e:
                logger.error(f"Error classifying frame {frame.frame_number}: {e}")
                continue

            snapshot = machine.process_frame(predictions)
            logger.debug(f"Frame {frame.frame_number}: {', '.join(p.display_text for p in snapshot.predictions)}")

    except FileNotFoundError as e:
        logger.error(f"Model files missing, set MODEL_PATH/LABELS_PATH or --model/--labels: {e}")
    except ImportError as e:
        logger.error(f"TFLite runtime not available, install the 'model' extra: {e}")
    except Exception as e:
        logger.error(f"Pipeline error: {e}")
    finally:
        if machine is not None:
            machine.end_session()
        memory.remove_reset_hook(reset_hook)
        set_pipeline_running(False)
        if isinstance(announcer, SpeechAnnouncer):
            announcer.stop()
        logger.info("Pipeline stopped")


def run_api_server() -> None:
    """Run the FastAPI server."""
    config = get_config()

    logger.info(f"Starting API server on {config.api.host}:{config.api.port}")

    uvicorn.run(
        app,
        host=config.api.host,
        port=config.api.port,
        log_level="info",
    )


def main(source: Optional[Union[int, str]] = None, api_only: bool = False) -> None:
    """Main entry point.

    Args:
        source: Camera index, URL or file path. If None, uses environment variable.
        api_only: If True, only run the API server without the camera pipeline.
    """
    # Setup signal handlers
    def signal_handler(signum, frame):
        logger.info("Received shutdown signal")
        _shutdown_event.set()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if not api_only:
        # Start pipeline in a separate thread
        pipeline_thread = threading.Thread(
            target=run_pipeline,
            args=(source,),
            daemon=True,
        )
        pipeline_thread.start()

    # Run API server in main thread
    run_api_server()


def parse_source(value: str) -> Union[int, str]:
    """Camera index if numeric, otherwise a URL or file path."""
    return int(value) if value.isdigit() else value


def cli(argv: Optional[list[str]] = None) -> None:
    """Command line entry point."""
    parser = argparse.ArgumentParser(description="Banknote Counter")
    parser.add_argument(
        "--source",
        "-s",
        type=parse_source,
        help="Camera index, stream URL or video file path",
    )
    parser.add_argument(
        "--api-only",
        action="store_true",
        help="Only run the API server without the camera pipeline",
    )
    parser.add_argument("--model", type=str, help="Path to the TFLite model")
    parser.add_argument("--labels", type=str, help="Path to labels.txt")
    parser.add_argument(
        "--no-speech",
        action="store_true",
        help="Log announcements instead of speaking them",
    )
    parser.add_argument("--no-flip", action="store_true", help="Do not mirror the camera image")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="API server host")
    parser.add_argument("--port", type=int, default=8000, help="API server port")

    args = parser.parse_args(argv)

    # Override config with command line args
    config = get_config()
    config.api.host = args.host
    config.api.port = args.port
    if args.model:
        config.classifier.model_path = args.model
    if args.labels:
        config.classifier.labels_path = args.labels
    if args.no_speech:
        config.speech.enabled = False
    if args.no_flip:
        config.video.flip = False

    main(source=args.source, api_only=args.api_only)


if __name__ == "__main__":
    cli()
