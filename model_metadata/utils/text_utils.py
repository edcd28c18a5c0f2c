"""
Text helpers for cleaning and validating values pulled out of model cards,
converting dates to epoch seconds and normalising names, tasks and languages.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from ..config import ExtractionSettings

logger = logging.getLogger(__name__)

_DEFAULT_SETTINGS = ExtractionSettings()

LIST_SPLIT_PATTERN = re.compile(r"\s*(?:[,;|]|\s+and\s+)\s*", re.IGNORECASE)
UNSAFE_PATH_CHARS = re.compile(r'[/\\:*?"<>|]')

# Free text such as descriptions may span lines and run longer than scalar fields
TEXT_MAX_LENGTH = 5000

LANGUAGE_CODES = {
    "english": "en",
    "spanish": "es",
    "french": "fr",
    "german": "de",
    "italian": "it",
    "portuguese": "pt",
    "russian": "ru",
    "chinese": "zh",
    "japanese": "ja",
    "korean": "ko",
    "arabic": "ar",
    "hindi": "hi",
    "dutch": "nl",
    "swedish": "sv",
    "danish": "da",
    "norwegian": "no",
    "finnish": "fi",
    "polish": "pl",
    "czech": "cs",
    "hungarian": "hu",
    "turkish": "tr",
    "hebrew": "he",
    "thai": "th",
    "vietnamese": "vi",
    "indonesian": "id",
    "malay": "ms",
    "tagalog": "tl",
    "swahili": "sw",
}

TASK_ALIASES = {
    "text generation": "text-generation",
    "text-generation": "text-generation",
    "language modeling": "text-generation",
    "conversational": "text-generation",
    "conversation": "text-generation",
    "chatbot": "text-generation",
    "chat": "text-generation",
    "dialogue": "text-generation",
    "code generation": "text-generation",
    "coding": "text-generation",
    "completion": "text-generation",
    "text classification": "text-classification",
    "text-classification": "text-classification",
    "sentiment analysis": "text-classification",
    "classification": "text-classification",
    "question answering": "question-answering",
    "question-answering": "question-answering",
    "q&a": "question-answering",
    "image classification": "image-classification",
    "image-classification": "image-classification",
    "image captioning": "image-to-text",
    "image-to-text": "image-to-text",
    "visual question answering": "image-text-to-text",
    "image-text-to-text": "image-text-to-text",
    "image-to-image": "image-to-image",
    "sentence similarity": "sentence-similarity",
    "sentence-similarity": "sentence-similarity",
    "text ranking": "text-ranking",
    "text-ranking": "text-ranking",
    "any-to-any": "any-to-any",
    "text-to-video": "text-to-video",
    "video-to-video": "video-to-video",
    "automatic speech recognition": "automatic-speech-recognition",
    "automatic-speech-recognition": "automatic-speech-recognition",
}

# Longest aliases first so "text classification" beats "classification"
_TASK_ALIASES_BY_LENGTH = sorted(TASK_ALIASES.items(), key=lambda item: len(item[0]), reverse=True)


def clean_value(value: str) -> str:
    """Strip whitespace, markdown emphasis/quote characters and trailing ':' or '.'."""
    value = value.strip().rstrip(":.")
    value = value.strip("*_`\"'")
    value = value.rstrip(":.")
    return value.strip()


def is_valid_value(
    value: Optional[str],
    min_length: int = 1,
    max_length: Optional[int] = None,
    patterns: Optional[Sequence[str]] = None,
    settings: Optional[ExtractionSettings] = None,
    multiline: bool = False,
) -> bool:
    """
    Return True when a candidate string is worth keeping.

    A value is rejected when it is empty after trimming, is a placeholder token
    (N/A, TBD, unknown, ...), falls outside the length bounds, contains control
    characters, or does not match at least one of the optional ``patterns``.
    With ``multiline`` the value may contain line breaks and tabs; each line
    must still be printable.
    """
    settings = settings or _DEFAULT_SETTINGS
    if value is None:
        return False
    stripped = value.strip()
    if not stripped:
        return False
    if settings.is_placeholder(stripped):
        return False

    max_length = max_length or settings.max_value_length
    if len(stripped) < min_length or len(stripped) > max_length:
        return False
    if multiline:
        if not all(line.replace("\t", " ").isprintable() for line in stripped.splitlines()):
            return False
    elif not stripped.isprintable():
        return False

    if patterns:
        return any(re.search(pattern, stripped) for pattern in patterns)
    return True


def split_list_value(value: str) -> List[str]:
    """Split list-like text on ',', ';', '|' and ' and ' into cleaned elements."""
    return [clean_value(part) for part in LIST_SPLIT_PATTERN.split(value) if clean_value(part)]


def parse_date_to_epoch(date_str: Optional[str], settings: Optional[ExtractionSettings] = None) -> Optional[int]:
    """
    Convert a date string to whole seconds since the epoch at UTC midnight.

    Formats are tried in order and the first match wins, so "7/11/2024" is read
    month-first. Returns None when no format matches.
    """
    if not date_str:
        return None
    settings = settings or _DEFAULT_SETTINGS
    cleaned = clean_value(str(date_str))

    for fmt in settings.date_formats:
        try:
            parsed = datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
        midnight = datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)
        return int(midnight.timestamp())

    logger.debug(f"Unparsable date string: {date_str!r}")
    return None


def parse_timestamp_to_epoch(value) -> Optional[int]:
    """Convert an ISO-8601 timestamp (str or datetime) to epoch seconds."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug(f"Unparsable timestamp: {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def parse_language_names(text: str) -> List[str]:
    """Map language names ("English, French and German") to locale codes."""
    locales: List[str] = []
    for part in LIST_SPLIT_PATTERN.split(text.lower()):
        code = LANGUAGE_CODES.get(part.strip().strip(".,"))
        if code and code not in locales:
            locales.append(code)
    return locales


def normalize_task(task: str) -> str:
    """Map a free-text task description onto a Hugging Face task id where possible."""
    if not task:
        return ""
    lowered = task.strip().lower()
    if lowered in TASK_ALIASES:
        return TASK_ALIASES[lowered]
    for alias, normalized in _TASK_ALIASES_BY_LENGTH:
        if alias in lowered:
            return normalized

    if "question" in lowered and "answer" in lowered:
        return "question-answering"
    if "image" in lowered and "text" in lowered:
        return "image-text-to-text"
    if "image" in lowered:
        return "image-classification"
    if "generat" in lowered:
        return "text-generation"
    if "classif" in lowered:
        return "text-classification"
    return task.strip()


def dedupe(values: Iterable[str]) -> List[str]:
    """Drop empties and duplicates, keeping first-seen order."""
    seen = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def sanitize_reference(reference: str) -> str:
    """Turn a model reference into a directory name."""
    sanitized = UNSAFE_PATH_CHARS.sub("_", reference)
    sanitized = re.sub(r"_+", "_", sanitized)
    return sanitized.strip("_")


_KNOWN_WORDS = {
    "granite": "Granite",
    "llama": "Llama",
    "mistral": "Mistral",
    "mixtral": "Mixtral",
    "qwen": "Qwen",
    "phi": "Phi",
    "gemma": "Gemma",
    "instruct": "Instruct",
    "base": "Base",
    "chat": "Chat",
    "quantized": "Quantized",
    "ibm": "IBM",
    "microsoft": "Microsoft",
    "meta": "Meta",
    "redhat": "Red Hat AI",
    "redhatai": "Red Hat AI",
    "fp8": "FP8",
}
_VERSION_WORD = re.compile(r"^\d+(\.\d+)*[a-z]*$")


def generate_readable_description(model_name: Optional[str]) -> str:
    """
    Build a short description from a model name or image reference, e.g.
    "registry.example.io/ai/modelcar-granite-3.1-8b-instruct:1.5" ->
    "Granite 3.1 8b Instruct - An instruction-tuned language model".
    """
    if not model_name:
        return ""

    cleaned = model_name.rsplit("/", 1)[-1]
    cleaned = cleaned.split(":", 1)[0]
    cleaned = cleaned.replace("-", " ").replace("_", " ")
    for prefix in ("modelcar", "rhelai1", "model", "ai"):
        if cleaned.lower().startswith(prefix + " "):
            cleaned = cleaned[len(prefix) + 1:]

    words = []
    for word in cleaned.split():
        lowered = word.lower()
        if lowered in _KNOWN_WORDS:
            words.append(_KNOWN_WORDS[lowered])
        elif _VERSION_WORD.match(word):
            words.append(word)
        else:
            words.append(word[:1].upper() + word[1:])

    if not words:
        return ""

    description = " ".join(words)
    lowered = description.lower()
    if "instruct" in lowered:
        return description + " - An instruction-tuned language model"
    if "chat" in lowered:
        return description + " - A conversational AI model"
    if "base" in lowered:
        return description + " - A foundation language model"
    return description + " - A large language model"


def normalize_model_name(name: str) -> str:
    """Lower-case a model name or reference and reduce it to hyphen-separated tokens."""
    normalized = name.lower().strip()
    normalized = normalized.rsplit("/", 1)[-1]
    if ":" in normalized:
        normalized = normalized.rsplit(":", 1)[0]
    if normalized.startswith("modelcar-"):
        normalized = normalized[len("modelcar-"):]
    normalized = re.sub(r"[_. ]", "-", normalized)
    return re.sub(r"-+", "-", normalized).strip("-")


def calculate_similarity(first: str, second: str) -> float:
    """Token-overlap similarity between two model names, in [0, 1]."""
    a = normalize_model_name(first)
    b = normalize_model_name(second)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    a_tokens = [t for t in a.split("-") if t]
    b_tokens = [t for t in b.split("-") if t]
    remaining = list(b_tokens)
    common = 0
    for token in a_tokens:
        if token in remaining:
            remaining.remove(token)
            common += 1

    score = common / max(len(a_tokens), len(b_tokens))
    if a in b or b in a:
        score += (1.0 - score) * 0.1
    return score
