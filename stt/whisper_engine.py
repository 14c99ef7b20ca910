"""
whisper.cpp inference via pywhispercpp. Loads single-file GGML models (ggml-<variant>.bin).
Expects 16 kHz mono float32 samples in [-1, 1].
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import numpy as np

from sdk.abstractions import (
    STAGE_COMPLETE,
    STAGE_FINALIZING,
    STAGE_LOADING_MODEL,
    STAGE_PROCESSING_AUDIO,
    InferenceEngine,
    StageCallback,
    StageProgress,
)

logger = logging.getLogger(__name__)


class WhisperCppEngine(InferenceEngine):
    """
    Transcribe with whisper.cpp. The handle returned by load() is a pywhispercpp Model;
    greedy decoding, no translation, no timestamps.
    """

    def __init__(self, language: str | None = "en") -> None:
        self._language = language

    def load(self, path: Path) -> Any:
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Model file not found: {path}")
        from pywhispercpp.model import Model

        model = Model(
            str(path),
            redirect_whispercpp_logs_to=None,
            print_progress=False,
            print_realtime=False,
            print_timestamps=False,
        )
        logger.info("whisper.cpp model loaded: %s", path.name)
        return model

    def infer(
        self,
        handle: Any,
        samples: np.ndarray,
        thread_count: int,
        on_stage_progress: StageCallback | None = None,
    ) -> str:
        def report(stage: str, progress: float) -> None:
            if on_stage_progress is not None:
                on_stage_progress(StageProgress(stage, progress))

        report(STAGE_LOADING_MODEL, 0.0)
        audio = np.ascontiguousarray(samples, dtype=np.float32)
        if audio.size == 0:
            report(STAGE_COMPLETE, 1.0)
            return ""
        params: dict[str, Any] = {
            "n_threads": max(1, int(thread_count or os.cpu_count() or 1)),
            "translate": False,
        }
        if self._language:
            params["language"] = self._language

        report(STAGE_PROCESSING_AUDIO, 0.33)
        segments = handle.transcribe(audio, **params)

        report(STAGE_FINALIZING, 0.66)
        text = " ".join(s.text.strip() for s in segments if s.text and s.text.strip()).strip()
        if not text:
            logger.info(
                "whisper.cpp returned no text (%d segment(s), %.1fs of audio)",
                len(segments),
                audio.size / 16000,
            )
        report(STAGE_COMPLETE, 1.0)
        return text

    def unload(self, handle: Any) -> None:
        # pywhispercpp frees the whisper context when the Model is collected.
        del handle
