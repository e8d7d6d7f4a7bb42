"""Google Speech-to-Text transcription backends."""

import time
import logging
from datetime import datetime
from typing import Iterator, Optional

from .base import AbstractTranscriptionBackend, AbstractStreamingBackend, StreamingUpdate, NO_SPEECH_DETECTED
from ..errors import TranscriptionError
from ..models.transcription import TranscriptionResult

from google.cloud import speech
from google.api_core import exceptions as gax_exceptions
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

# Errors that will not go away by retrying the next clip
NON_RETRYABLE_ERRORS = (
    gax_exceptions.Unauthenticated,
    gax_exceptions.PermissionDenied,
    gax_exceptions.InvalidArgument,
)


def _load_client(credentials_path: str) -> speech.SpeechClient:
    logger.info(f"Loading Google credentials from: {credentials_path}")
    credentials = service_account.Credentials.from_service_account_file(credentials_path)
    logger.info(f"Using Google Cloud project: {credentials.project_id}")
    return speech.SpeechClient(credentials=credentials)


def _recognition_config(sample_rate: int, language: str, use_enhanced: bool,
                        enable_automatic_punctuation: bool, model: str) -> speech.RecognitionConfig:
    return speech.RecognitionConfig(
        encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
        sample_rate_hertz=sample_rate,
        language_code=language,
        use_enhanced=use_enhanced,
        enable_automatic_punctuation=enable_automatic_punctuation,
        model=model,
    )


def _translate_error(e: gax_exceptions.GoogleAPICallError, context: str) -> TranscriptionError:
    if isinstance(e, gax_exceptions.DeadlineExceeded):
        return TranscriptionError(f"Google Speech timeout ({context}): {e}")
    if isinstance(e, gax_exceptions.ServiceUnavailable):
        return TranscriptionError(f"Google Speech service unavailable ({context}): {e}")
    if isinstance(e, NON_RETRYABLE_ERRORS):
        return TranscriptionError(f"Google Speech rejected request ({context}): {e}", retryable=False)
    return TranscriptionError(f"Google Speech API error ({context}): {e}")


class GoogleSpeechBackend(AbstractTranscriptionBackend):
    """Google Speech-to-Text request/response backend used by chunked transcription."""

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 sample_rate: int = 16000,
                 language: str = "en-US",
                 use_enhanced: bool = True,
                 enable_automatic_punctuation: bool = True):
        """Initialize Google Speech backend.

        Args:
            credentials_path: Path to Google Cloud service account JSON file
            language: Language code (e.g., 'en-US', 'es-ES')
            use_enhanced: Whether to use enhanced model (costs more but better quality)
            enable_automatic_punctuation: Enable automatic punctuation
        """
        super().__init__(language)
        self.credentials_path = credentials_path
        if not self.credentials_path:
            raise ValueError("Google credentials path is required - cannot initialize without credentials")
        self.client = None
        self.service_name = "Google Speech-to-Text"
        self.config = _recognition_config(sample_rate, language, use_enhanced,
                                          enable_automatic_punctuation, model="latest_long")

    def initialize(self) -> bool:
        """Initialize Google Speech client and verify credentials."""
        self.client = _load_client(self.credentials_path)
        logger.info("Google Speech-to-Text backend initialized successfully")
        return True

    def transcribe_clip(self, chunk_id: str, audio_clip: bytes,
                        timeout: Optional[float] = None) -> TranscriptionResult:
        """Transcribe an encoded clip using Google Speech-to-Text."""
        start_time = time.time()
        logger.debug(f"Chunk ID: {chunk_id}; clip size: {len(audio_clip)} bytes; language: {self.language}")

        audio = speech.RecognitionAudio(content=audio_clip)
        try:
            response = self.client.recognize(config=self.config, audio=audio, timeout=timeout)
        except gax_exceptions.GoogleAPICallError as e:
            logger.error("Google STT call failed for chunk %s: %s", chunk_id, e)
            raise _translate_error(e, f"chunk={chunk_id}") from e
        processing_time = time.time() - start_time

        if not response.results:
            logger.debug("--- NO SPEECH DETECTED ---")
            return TranscriptionResult(
                text=NO_SPEECH_DETECTED,
                confidence=0.0,
                processing_time=processing_time,
                timestamp=datetime.now(),
                service=self.service_name,
                language=self.language,
                chunk_id=chunk_id,
            )

        # Long clips come back as several consecutive results
        text = " ".join(r.alternatives[0].transcript.strip()
                        for r in response.results if r.alternatives)
        confidences = [r.alternatives[0].confidence for r in response.results if r.alternatives]
        confidence = sum(confidences) / len(confidences) if confidences else 0.0
        logger.debug(f"Transcript='{text}' (conf={confidence:.2f}, processing_time={processing_time:.3f}s)")
        return TranscriptionResult(
            text=text,
            confidence=confidence,
            processing_time=processing_time,
            timestamp=datetime.now(),
            service=self.service_name,
            language=self.language,
            chunk_id=chunk_id,
        )


class GoogleStreamingBackend(AbstractStreamingBackend):
    """Google Speech-to-Text streaming_recognize backend."""

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 sample_rate: int = 16000,
                 language: str = "en-US",
                 enable_automatic_punctuation: bool = True,
                 interim_results: bool = True):
        if not credentials_path:
            raise ValueError("Google credentials path is required - cannot initialize without credentials")
        self.credentials_path = credentials_path
        self.language = language
        self.client = None
        self.streaming_config = speech.StreamingRecognitionConfig(
            config=_recognition_config(sample_rate, language, use_enhanced=True,
                                       enable_automatic_punctuation=enable_automatic_punctuation,
                                       model="latest_long"),
            interim_results=interim_results,
        )

    def initialize(self) -> bool:
        self.client = _load_client(self.credentials_path)
        logger.info("Google streaming backend initialized successfully")
        return True

    def stream(self, audio_chunks: Iterator[bytes]) -> Iterator[StreamingUpdate]:
        requests = (speech.StreamingRecognizeRequest(audio_content=chunk) for chunk in audio_chunks)
        try:
            responses = self.client.streaming_recognize(config=self.streaming_config, requests=requests)
            for response in responses:
                for result in response.results:
                    if not result.alternatives:
                        continue
                    alternative = result.alternatives[0]
                    yield StreamingUpdate(
                        text=alternative.transcript,
                        is_final=result.is_final,
                        confidence=alternative.confidence,
                    )
        except gax_exceptions.GoogleAPICallError as e:
            logger.error("Google streaming call failed: %s", e)
            raise _translate_error(e, "streaming") from e
