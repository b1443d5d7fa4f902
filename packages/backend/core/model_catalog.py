"""SenseVoice model catalog for local speech-to-text.

Defines the model variants that can be downloaded for transcription and the
remote files backing each one. Both variants share the same vocabulary file.
"""

from dataclasses import dataclass
from typing import Literal

ModelType = Literal["int8", "float32"]

# Cache key for in-flight downloads: one variant family is active at a time
MODEL_FAMILY = "sensevoice"

_REPO_URL = "https://modelscope.cn/models/pengzhendong/sherpa-onnx-sense-voice-zh-en-ja-ko-yue/resolve/master"


@dataclass(frozen=True)
class ModelFiles:
    """File names of one variant inside the model directory."""

    model: str
    tokens: str


@dataclass(frozen=True)
class ModelVariant:
    """SenseVoice model definition."""

    id: ModelType
    name: str
    files: ModelFiles
    size_bytes: int
    size_label: str


@dataclass(frozen=True)
class ModelUrls:
    """Download locations for one variant."""

    model: str
    tokens: str


SENSEVOICE_MODELS: dict[ModelType, ModelVariant] = {
    "int8": ModelVariant(
        id="int8",
        name="SenseVoice (int8 quantized)",
        files=ModelFiles(model="model.int8.onnx", tokens="tokens.txt"),
        size_bytes=235_000_000,
        size_label="235 MB",
    ),
    "float32": ModelVariant(
        id="float32",
        name="SenseVoice (float32 full precision)",
        files=ModelFiles(model="model.onnx", tokens="tokens.txt"),
        size_bytes=920_000_000,
        size_label="920 MB",
    ),
}

MODEL_DOWNLOAD_URLS: dict[ModelType, ModelUrls] = {
    "int8": ModelUrls(
        model=f"{_REPO_URL}/model.int8.onnx",
        tokens=f"{_REPO_URL}/tokens.txt",
    ),
    "float32": ModelUrls(
        model=f"{_REPO_URL}/model.onnx",
        tokens=f"{_REPO_URL}/tokens.txt",
    ),
}

DEFAULT_MODEL_TYPE: ModelType = "int8"


def get_model_variant(model_type: str | None) -> ModelVariant:
    """Get a variant by type, falling back to the default for unknown values."""
    return SENSEVOICE_MODELS.get(model_type or DEFAULT_MODEL_TYPE, SENSEVOICE_MODELS[DEFAULT_MODEL_TYPE])


def get_model_urls(model_type: str | None) -> ModelUrls:
    """Get the download URLs for a variant."""
    return MODEL_DOWNLOAD_URLS[get_model_variant(model_type).id]


def all_model_file_names() -> list[str]:
    """Every file name any variant may leave in the model directory."""
    names: list[str] = []
    for variant in SENSEVOICE_MODELS.values():
        for name in (variant.files.model, variant.files.tokens):
            if name not in names:
                names.append(name)
    return names
