"""Built-in task definitions and bundled models."""

from __future__ import annotations

from .configs import BooleanConfig, ConfigKey, NumberConfig, ValueType
from .models import ModelDataFile, ModelDescriptor, Task, TaskType

TASK_DESCRIPTIONS = {
    TaskType.LLM_CHAT: "Chat with on-device large language models",
    TaskType.LLM_PROMPT_LAB: "Single turn use cases with on-device large language models",
    TaskType.LLM_ASK_IMAGE: "Ask questions about images with on-device large language models",
    TaskType.LLM_ASK_AUDIO: (
        "Instantly transcribe and/or translate audio clips using on-device "
        "large language models"
    ),
    TaskType.SIGN_LANGUAGE_TRANSLATE: "Translate sign language to English on device",
}

SIGN_LANGUAGE_CONFIGS = (
    NumberConfig(
        key=ConfigKey.CONFIDENCE_THRESHOLD,
        default_value=0.75,
        value_type=ValueType.FLOAT,
        min_value=0.5,
        max_value=0.95,
        need_reinitialization=False,
    ),
    BooleanConfig(key=ConfigKey.USE_GPU, default_value=True),
    BooleanConfig(key=ConfigKey.REAL_TIME_MODE, default_value=True),
)


def sign_language_model() -> ModelDescriptor:
    """Bundled sign-language translator: one model file plus two data files."""
    return ModelDescriptor(
        name="Gemma 3N Sign Translator",
        commit_hash="main",
        download_file_name="gemma-3n-E2B-it-litert-preview.tflite",
        url=(
            "https://huggingface.co/google/gemma-3n-E2B-it-litert-preview"
            "/resolve/main/gemma-3n-E2B-it-litert-preview.tflite"
        ),
        size_in_bytes=89_478_144,
        extra_data_files=(
            ModelDataFile(
                name="hand_landmarker",
                url=(
                    "https://storage.googleapis.com/mediapipe-models/hand_landmarker"
                    "/hand_landmarker/float16/latest/hand_landmarker.task"
                ),
                download_file_name="hand_landmarker.task",
                size_in_bytes=7_819_105,
            ),
            ModelDataFile(
                name="asl_vocabulary",
                url=(
                    "https://raw.githubusercontent.com/google-ai-edge/gallery/main"
                    "/Android/assets/asl_vocabulary.json"
                ),
                download_file_name="asl_vocabulary.json",
                size_in_bytes=1_024_000,
            ),
        ),
        configs=SIGN_LANGUAGE_CONFIGS,
        info=(
            "Real-time ASL to English translation. All processing happens "
            "locally on your device."
        ),
        learn_more_url="https://huggingface.co/google/gemma-3n-E2B-it-litert-preview",
        estimated_peak_memory_in_bytes=2 * 1024**3,
    )


def default_tasks() -> list[Task]:
    """Fresh task list; only sign-language ships with a bundled model."""
    tasks = [Task(type=t, description=d) for t, d in TASK_DESCRIPTIONS.items()]
    for task in tasks:
        if task.type == TaskType.SIGN_LANGUAGE_TRANSLATE:
            task.models.append(sign_language_model())
    return tasks
