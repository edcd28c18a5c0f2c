import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..config import ExtractionSettings
from ..utils.text_utils import (
    TEXT_MAX_LENGTH,
    clean_value,
    dedupe,
    is_valid_value,
    normalize_task,
    parse_date_to_epoch,
    parse_language_names,
    split_list_value,
)
from .schemas import METADATA_FIELDS, CandidateField, DataSource, field_alias

logger = logging.getLogger(__name__)

CandidateSet = Dict[str, CandidateField]


def split_front_matter(content: str) -> Tuple[Optional[Dict[str, Any]], str]:
    """
    Split a leading ``---`` YAML block from markdown content.

    Returns ``(front_matter, body)``. ``front_matter`` is None when the block is
    missing, unterminated or not a YAML mapping; the body is then the full content.
    """
    if not content.lstrip().startswith("---"):
        return None, content

    lines = content.lstrip().split("\n")
    for index in range(1, len(lines)):
        if lines[index].strip() == "---":
            block = "\n".join(lines[1:index])
            body = "\n".join(lines[index + 1:]).lstrip("\n")
            try:
                data = yaml.safe_load(block)
            except yaml.YAMLError as e:
                logger.debug(f"Unparsable front matter: {e}")
                return None, body
            return (data if isinstance(data, dict) else None), body
    return None, content


class ModelCardExtractor:
    """
    Turns model card markdown into candidate fields.

    Front matter is read first; regex patterns over the body fill in whatever
    the front matter did not provide. Every accepted value is cleaned and
    validated, and carries ``DataSource.MODEL_CARD``.
    """

    NAME_SKIP_WORDS = ("define", "function", "tool", "example")
    NAME_HINTS = re.compile(
        r"model|llama|granite|mistral|mixtral|qwen|phi|gemma|deepseek|whisper|"
        r"\d+[.-]\d+|instruct|base|quantized|fp8|w\d+a\d+",
        re.IGNORECASE,
    )

    KNOWN_TASKS = [
        "text-generation",
        "text-to-text-generation",
        "question-answering",
        "summarization",
        "translation",
        "code generation",
        "conversational",
        "chat",
        "instruction-following",
    ]

    PATTERNS = {
        'name': re.compile(r'^#\s+(.+)$', re.MULTILINE),
        'provider': [
            re.compile(r'^-?\s*\*{0,2}(?:Model Developers?|Developers?|Authors?|Provider):\*{0,2}\s*(.+)$', re.IGNORECASE),
            re.compile(r'^-?\s*\*{0,2}(?:Developed by|Created by|Made by):\*{0,2}\s*(.+)$', re.IGNORECASE),
            re.compile(r'^-?\s*\*{0,2}(?:Company|Organization|Team):\*{0,2}\s*(.+)$', re.IGNORECASE),
        ],
        'company': re.compile(
            r'\b(IBM|Microsoft|Meta|Google|OpenAI|Anthropic|Mistral AI|Mistral|Neural Magic|Red Hat|'
            r'Hugging Face|Facebook|NVIDIA|Alibaba)\b(?:\s+(?:Research|AI|Inc\.?|Corporation|Corp\.?))?'
        ),
        'overview': re.compile(r'^##\s+(?:Model\s+)?Overview\s*\n(.*?)(?=^#|\Z)', re.IGNORECASE | re.MULTILINE | re.DOTALL),
        'first_paragraph': re.compile(r'^#[^\n]+\n\s*\n((?:[^\n#][^\n]*\n?)+)', re.MULTILINE),
        'license': re.compile(
            r'^-?\s*\*{0,2}(?:License(?:\(s\))?|Licensing):\*{0,2}\s*(?:\[([^\]]+)\]|\*{0,2}([A-Za-z0-9.\-_]+))',
            re.IGNORECASE,
        ),
        'license_link': re.compile(r'(?:license|licensing)[^(\n]*\((https?://[^)\s]+)\)', re.IGNORECASE),
        'release_date': re.compile(
            r'^-?\s*\*{0,2}(?:Release Date|Date):\*{0,2}\s*(\d{1,2}[/-]\d{1,2}[/-]\d{4}|\d{4}-\d{2}-\d{2})',
            re.IGNORECASE,
        ),
        'update_date': re.compile(
            r'(?:updated?|modified|last\s+update)[^\n]*?(\d{1,2}[/-]\d{1,2}[/-]\d{4}|\d{4}-\d{2}-\d{2})',
            re.IGNORECASE,
        ),
        'tasks': re.compile(r'^-?\s*\*{0,2}(?:Intended Use Cases?|Tasks?):\*{0,2}\s*(.+)$', re.IGNORECASE),
        'languages': re.compile(
            r'(?:supported\s+languages?|languages?\s+supported):\*{0,2}\s*([^.\n]+)|'
            r'supports\s+\d+\s+languages?\s+in\s+addition\s+to\s+English:\s*([^.\n]+)',
            re.IGNORECASE,
        ),
    }

    def __init__(self, settings: Optional[ExtractionSettings] = None):
        self.settings = settings or ExtractionSettings()

    def extract(self, content: str) -> CandidateSet:
        """Extract every field the markdown supports; missing fields are simply absent."""
        candidates: CandidateSet = {}
        if not content or not content.strip():
            return candidates

        front_matter, body = split_front_matter(content)
        if front_matter:
            self._extract_front_matter(front_matter, candidates)

        self._extract_body(body, candidates)
        candidates["readme"] = self._candidate(content, "full_content")

        logger.debug(f"Model card yielded fields: {sorted(candidates)}")
        return candidates

    # --- helpers ---
    @staticmethod
    def _candidate(value: Any, method: str) -> CandidateField:
        return CandidateField(value=value, source=DataSource.MODEL_CARD, extraction_method=method)

    def _valid(self, value: Any, min_length: int = 1, max_length: Optional[int] = None,
               patterns: Optional[List[str]] = None, multiline: bool = False) -> Optional[str]:
        if value is None or isinstance(value, (dict, list)):
            return None
        # free text keeps its punctuation
        cleaned = str(value).strip() if multiline else clean_value(str(value))
        if is_valid_value(cleaned, min_length, max_length, patterns, self.settings, multiline=multiline):
            return cleaned
        return None

    def _valid_list(self, value: Any, max_length: int = 100) -> List[str]:
        if value is None:
            return []
        items = value if isinstance(value, list) else split_list_value(str(value))
        return dedupe(v for v in (self._valid(item, 1, max_length) for item in items) if v)

    def _date(self, value: Any) -> Optional[int]:
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if hasattr(value, "year"):
            # PyYAML already turned an ISO date into a date object
            return parse_date_to_epoch(value.strftime("%Y-%m-%d"), self.settings)
        return parse_date_to_epoch(self._valid(value), self.settings)

    # --- front matter ---
    def _extract_front_matter(self, data: Dict[str, Any], candidates: CandidateSet) -> None:
        method = "front_matter"

        name = self._valid(data.get("name") or data.get("model_name"), 2, 200)
        if name:
            candidates["name"] = self._candidate(name, method)

        provider = self._valid(data.get("provider") or data.get("model_developer"), 2, 100)
        if provider:
            candidates["provider"] = self._candidate(provider, method)

        description = self._valid(data.get("description"), 10, TEXT_MAX_LENGTH, multiline=True)
        if description:
            candidates["description"] = self._candidate(description, method)

        license_value = self._valid(data.get("license_name"), 2, 100) or self._valid(data.get("license"), 2, 100)
        if license_value:
            candidates["license"] = self._candidate(license_value, method)

        license_link = self._valid(data.get("license_link"), 10, 300, [r"^https?://"])
        if license_link:
            candidates["license_link"] = self._candidate(license_link, method)

        languages = self._valid_list(data.get("language"), 50)
        if languages:
            candidates["language"] = self._candidate(languages, method)

        tags = self._valid_list(data.get("tags"))
        if tags:
            candidates["tags"] = self._candidate(tags, method)

        tasks = self._valid_list(data.get("tasks"))
        if not tasks:
            tasks = self._valid_list(data.get("pipeline_tag"))
        if tasks:
            candidates["tasks"] = self._candidate(dedupe(normalize_task(t) for t in tasks), method)

        validated_on = self._valid_list(data.get("validated_on"))
        if validated_on:
            candidates["validated_on"] = self._candidate(validated_on, method)

        created = self._date(data.get("release_date"))
        if created is not None:
            candidates["create_time_since_epoch"] = self._candidate(created, method)

    # --- body patterns ---
    def _extract_body(self, body: str, candidates: CandidateSet) -> None:
        method = "text_pattern"
        lines = body.split("\n")

        if "name" not in candidates:
            name = self._find_name(body)
            if name:
                candidates["name"] = self._candidate(name, method)

        if "provider" not in candidates:
            provider = self._find_provider(body, lines)
            if provider:
                candidates["provider"] = self._candidate(provider, method)

        if "description" not in candidates:
            description = self._find_description(body)
            if description:
                candidates["description"] = self._candidate(description, method)

        if "license" not in candidates:
            for line in lines:
                match = self.PATTERNS['license'].search(line)
                if match:
                    license_value = self._valid(match.group(1) or match.group(2), 2, 60, [r"^[A-Za-z0-9.\-_\s]+$"])
                    if license_value:
                        candidates["license"] = self._candidate(license_value, method)
                        break

        if "license_link" not in candidates:
            match = self.PATTERNS['license_link'].search(body)
            if match:
                link = self._valid(match.group(1), 10, 300, [r"^https?://"])
                if link:
                    candidates["license_link"] = self._candidate(link, method)

        if "create_time_since_epoch" not in candidates:
            for line in lines:
                match = self.PATTERNS['release_date'].search(line)
                if match:
                    created = parse_date_to_epoch(match.group(1), self.settings)
                    if created is not None:
                        candidates["create_time_since_epoch"] = self._candidate(created, method)
                        break

        match = self.PATTERNS['update_date'].search(body)
        if match:
            updated = parse_date_to_epoch(match.group(1), self.settings)
            if updated is not None:
                candidates["last_update_time_since_epoch"] = self._candidate(updated, method)

        if "tasks" not in candidates:
            tasks = self._find_tasks(lines)
            if tasks:
                candidates["tasks"] = self._candidate(tasks, method)

        if "language" not in candidates:
            match = self.PATTERNS['languages'].search(body)
            if match:
                text = match.group(1) or "English, " + match.group(2)
                languages = parse_language_names(clean_value(text))
                if languages:
                    candidates["language"] = self._candidate(languages, method)

    def _find_name(self, body: str) -> Optional[str]:
        for match in self.PATTERNS['name'].finditer(body):
            heading = clean_value(match.group(1))
            lowered = heading.lower()
            if any(word in lowered for word in self.NAME_SKIP_WORDS) or "(" in heading or "def " in heading:
                continue
            if self.NAME_HINTS.search(heading):
                name = self._valid(heading, 3, 100)
                if name:
                    return name
        return None

    def _find_provider(self, body: str, lines: List[str]) -> Optional[str]:
        for line in lines:
            for pattern in self.PATTERNS['provider']:
                match = pattern.search(line)
                if match:
                    provider = self._valid(match.group(1), 2, 100, [r"^[A-Za-z0-9\s.&,\-()]+$"])
                    if provider:
                        return provider

        match = self.PATTERNS['company'].search(body)
        if match:
            return self._valid(match.group(0), 2, 100)
        return None

    def _find_description(self, body: str) -> Optional[str]:
        match = self.PATTERNS['overview'].search(body)
        if match:
            for paragraph in re.split(r"\n\s*\n", match.group(1)):
                text = " ".join(line.strip() for line in paragraph.splitlines()
                                if line.strip() and not line.strip().startswith(("-", "*", "|")))
                description = self._valid(text, 20, 500)
                if description:
                    return description

        match = self.PATTERNS['first_paragraph'].search(body)
        if match:
            text = " ".join(line.strip() for line in match.group(1).splitlines() if line.strip())
            return self._valid(text, 20, 500)
        return None

    def _find_tasks(self, lines: List[str]) -> List[str]:
        for line in lines:
            match = self.PATTERNS['tasks'].search(line)
            if not match:
                continue
            task_text = self._valid(match.group(1), 5, 300)
            if not task_text:
                continue
            lowered = task_text.lower()
            raw_tasks = [task for task in self.KNOWN_TASKS if task in lowered]
            if not raw_tasks:
                raw_tasks = re.split(r"[,;]", task_text)
            tasks = []
            for raw in raw_tasks:
                task = self._valid(raw, 3, 50)
                if task:
                    tasks.append(normalize_task(task))
            return dedupe(tasks)
        return []

    @staticmethod
    def presence_flags(candidates: CandidateSet) -> Dict[str, bool]:
        """Which model card fields were found, for the run manifest."""
        return {field_alias(name): name in candidates for name in METADATA_FIELDS if name != "artifacts"}

