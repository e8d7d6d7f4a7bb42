"""Main application entry point for LiveQuiz."""

import sys
import argparse
import logging
import threading
from datetime import timedelta
from pathlib import Path

from livequiz.audio.audio_pub import AudioPublisher
from livequiz.audio.capture import AudioCapture
from livequiz.distribution.dispatcher import DistributionDispatcher
from livequiz.distribution.rate_limiter import RateLimiter
from livequiz.models.distribution import SendSource
from livequiz.models.questions import QuestionType
from livequiz.models.transcription import TranscriptionMode
from livequiz.presenter.broadcast import PresenterBroadcastChannel
from livequiz.questions.formatter import QuestionFormatter
from livequiz.questions.generator import QuestionGenerator
from livequiz.questions.inference_client import InferenceClient
from livequiz.services.async_runner import AsyncRunner
from livequiz.services.interval_scheduler import IntervalScheduler
from livequiz.services.lecture_service import LectureService
from livequiz.services.recording_controller import RecordingController
from livequiz.services.voice_commands import VoiceCommandDetector
from livequiz.storage.database import Database
from livequiz.storage.delivery_store import SQLiteDeliveryStore
from livequiz.storage.rate_limit_store import SQLiteRateLimitStore
from livequiz.storage.roster import load_roster
from livequiz.transcription.chunked import ChunkedTranscriber
from livequiz.transcription.google_backend import GoogleSpeechBackend, GoogleStreamingBackend
from livequiz.transcription.streaming import StreamingTranscriber
from livequiz.ui.keyboard_input import KeyboardInputHandler
from livequiz.ui.presenter_screen import PresenterScreen

from .config import LiveQuizConfig

logger = logging.getLogger(__name__)


class Server:

    def __init__(self, config_path: str, log_level: str = None):
        # Load configuration
        self.config = LiveQuizConfig(config_path)
        # Command line level wins over the config file
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.stop_event = threading.Event()
        self.service: LectureService = None
        self.runner: AsyncRunner = None
        self.database: Database = None
        self.keyboard: KeyboardInputHandler = None

    def init(self):
        logger.info("Initializing services...")
        config = self.config

        sample_rate = config.get('audio.sample_rate', 16000)
        chunk_size = config.get('audio.chunk_size', 1024)
        channels = config.get('audio.channels', 1)
        logger.info(f"Audio settings: {sample_rate}Hz, {chunk_size} samples/chunk, {channels} channels")

        self.runner = AsyncRunner()
        self.database = Database(config.get_database_path())
        if self.database.path != ":memory:":
            Path(self.database.path).parent.mkdir(parents=True, exist_ok=True)
        self.runner.run(self.database.connect())

        self.audio_publisher = AudioPublisher()
        self.audio_capture = AudioCapture(
            callback=self.audio_publisher.publish_audio_frame,
            sample_rate=sample_rate,
            chunk_size=chunk_size,
            channels=channels
        )

        credentials_path = config.get_google_credentials_path()
        language = config.get('google_cloud.language', 'en-US')
        punctuation = config.get('google_cloud.enable_automatic_punctuation', True)
        speech_backend = GoogleSpeechBackend(
            credentials_path=credentials_path,
            sample_rate=sample_rate,
            language=language,
            use_enhanced=config.get('google_cloud.use_enhanced_model', True),
            enable_automatic_punctuation=punctuation,
        )
        speech_backend.initialize()
        streaming_backend = GoogleStreamingBackend(
            credentials_path=credentials_path,
            sample_rate=sample_rate,
            language=language,
            enable_automatic_punctuation=punctuation,
            interim_results=config.get('transcription.streaming.interim_results', True),
        )
        streaming_backend.initialize()

        chunked = config.get('transcription.chunked', {}) or {}

        def strategy_factory(mode, emit):
            if mode is TranscriptionMode.STREAMING:
                return StreamingTranscriber(streaming_backend, emit)
            return ChunkedTranscriber(
                speech_backend,
                emit,
                sample_rate=sample_rate,
                channels=channels,
                clip_duration_seconds=chunked.get('clip_duration_seconds', 8.0),
                min_clip_bytes=chunked.get('min_clip_bytes', 1000),
                submit_timeout_seconds=chunked.get('submit_timeout_seconds', 10.0),
                backoff_base_seconds=chunked.get('backoff_base_seconds', 1.0),
                backoff_cap_seconds=chunked.get('backoff_cap_seconds', 30.0),
                max_consecutive_failures=chunked.get('max_consecutive_failures', 5),
            )

        scheduler = IntervalScheduler(
            on_interval=lambda snapshot: None,
            interval_minutes=config.get('auto_question.interval_minutes', 15),
        )
        controller = RecordingController(
            capture=self.audio_capture,
            strategy_factory=strategy_factory,
            scheduler=scheduler,
            default_mode=TranscriptionMode(config.get('transcription.default_mode', 'streaming')),
            ready_timeout_seconds=config.get('transcription.streaming.ready_timeout_seconds', 5.0),
        )

        client = InferenceClient(
            api_key=config.get_inference_api_key(),
            model=config.get('inference.model', 'gpt-4o-mini'),
            base_url=config.get('inference.base_url', 'https://api.openai.com/v1/chat/completions'),
            timeout_seconds=config.get('inference.timeout_seconds', 30.0),
        )
        dispatcher = DistributionDispatcher(
            SQLiteDeliveryStore(self.database,
                                record_ttl=timedelta(minutes=config.get('distribution.record_ttl_minutes', 15))),
            batch_size=config.get('distribution.batch_size', 15),
            batch_timeout_seconds=config.get('distribution.batch_timeout_seconds', 5.0),
            verify_sample_size=config.get('distribution.verify_sample_size', 5),
        )
        rate_limiter = RateLimiter(
            SQLiteRateLimitStore(self.database),
            cooldown_seconds=config.get('rate_limit.cooldown_seconds', 60),
            daily_limit=config.get('rate_limit.daily_limit', 200),
        )

        roster_file = config.get('instructor.roster_file')
        self.service = LectureService(
            controller=controller,
            scheduler=scheduler,
            generator=QuestionGenerator(client),
            formatter=QuestionFormatter(client, fast_path=config.get('auto_question.fast_path', False)),
            dispatcher=dispatcher,
            rate_limiter=rate_limiter,
            presenter=PresenterBroadcastChannel(),
            roster_provider=lambda: load_roster(roster_file) if roster_file else [],
            instructor_id=config.get('instructor.id', 'instructor'),
            voice_detector=VoiceCommandDetector(),
            runner=self.runner,
            format_preference=QuestionType.parse(config.get('auto_question.format_preference')),
            force_send=config.get('auto_question.force_send', True),
        )
        if config.get('auto_question.enabled', False):
            self.service.toggle_auto_question()

        self.screen = PresenterScreen()
        self.screen.attach()
        self.keyboard = KeyboardInputHandler(self.handle_key)

    def handle_key(self, key: str) -> bool:
        """Run the command bound to ``key``; returns False to quit."""
        if key == 'q':
            self.stop_event.set()
            return False

        if key == '1':
            result = self.service.start_recording()
        elif key == '2':
            result = self.service.stop_recording()
        elif key == '3':
            result = self.service.send_now(SendSource.MANUAL_BUTTON)
        elif key == '4':
            result = self.service.toggle_auto_question()
        else:
            return True

        if not result["success"]:
            self.screen.console.print(f"❌ {result['error']}", style="red")
        return True

    def run(self):
        try:
            self.keyboard.start()
            self.service.publish_status()
            self.service.run(self.stop_event)
        except Exception as e:
            logger.error(f"Error in run: {e}", exc_info=True)
        finally:
            self.cleanup()

    def cleanup(self):
        if self.keyboard:
            self.keyboard.stop()
            self.keyboard = None
        if self.service:
            self.service.shutdown()
            self.service = None
        if self.runner:
            if self.database:
                self.runner.run(self.database.close())
                self.database = None
            self.runner.close()
            self.runner = None


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/livequiz.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("LiveQuiz application starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def main() -> None:
    """Main entry point for LiveQuiz application."""
    parser = argparse.ArgumentParser(
        description="LiveQuiz - live lecture questions for every student",
        epilog="Commands: 1=Start recording, 2=Stop recording, 3=Send question now, "
               "4=Toggle auto-question, q=Quit"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: looks for livequiz.yaml)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="LiveQuiz v0.1.0"
    )

    args = parser.parse_args()

    server = None
    try:
        server = Server(args.config, args.log_level)
        server.init()
        server.run()
    except KeyboardInterrupt:
        if server:
            server.cleanup()
        print("\n👋 Goodbye!")
    except Exception as e:
        print(f"❌ Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
