"""
System prompt templates kept in a local JSON key/value file

The whole list lives under one key and is rewritten on every mutation.
"""

import json
import logging
import os
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from config import PROMPT_STORE_CONFIG
from errors import ConfigurationError

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now().isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class SystemPrompt:
    id: str
    name: str
    description: str
    content: str
    category: str = "General"
    is_favorite: bool = False
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SystemPrompt":
        return cls(
            id=str(data.get("id") or _new_id()),
            name=data.get("name", ""),
            description=data.get("description", ""),
            content=data.get("content", ""),
            category=data.get("category") or "General",
            is_favorite=bool(data.get("is_favorite", data.get("isFavorite", False))),
            created_at=data.get("created_at") or data.get("createdAt") or _now(),
            updated_at=data.get("updated_at") or data.get("updatedAt") or _now(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_PROMPTS = [
    SystemPrompt(
        id="1",
        name="Helpful Assistant",
        description="A general-purpose helpful assistant",
        content="You are a helpful, harmless, and honest assistant. Provide accurate and useful information "
                "while being respectful and professional.",
        category="General",
        is_favorite=True,
    ),
    SystemPrompt(
        id="2",
        name="Code Reviewer",
        description="Expert code reviewer and programming assistant",
        content="You are an expert software engineer and code reviewer. Analyze code for bugs, performance "
                "issues, security vulnerabilities, and best practices. Provide constructive feedback and "
                "suggestions for improvement.",
        category="Programming",
    ),
    SystemPrompt(
        id="3",
        name="Creative Writer",
        description="Creative writing and storytelling assistant",
        content="You are a creative writing assistant with expertise in storytelling, character development, "
                "and narrative structure. Help users craft engaging stories, develop characters, and improve "
                "their writing style.",
        category="Creative",
    ),
    SystemPrompt(
        id="4",
        name="Research Assistant",
        description="Academic and research-focused assistant",
        content="You are a research assistant with expertise in academic writing, data analysis, and scientific "
                "methodology. Help users with research questions, literature reviews, and academic writing "
                "while maintaining scholarly standards.",
        category="Academic",
    ),
]


class PromptStore:
    def __init__(self, path: Optional[str] = None, key: Optional[str] = None):
        self.path = path or PROMPT_STORE_CONFIG["path"]
        self.key = key or PROMPT_STORE_CONFIG["storage_key"]
        self._prompts: List[SystemPrompt] = self._load()

    def _load(self) -> List[SystemPrompt]:
        if not os.path.exists(self.path):
            return list(DEFAULT_PROMPTS)

        try:
            with open(self.path) as f:
                saved = json.load(f)[self.key]
            return [SystemPrompt.from_dict(p) for p in saved]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Could not read prompts from %s, using defaults: %s", self.path, e)
            return list(DEFAULT_PROMPTS)

    def _save(self):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        data = {}
        if os.path.exists(self.path):
            try:
                with open(self.path) as f:
                    data = json.load(f)
            except (OSError, ValueError):
                data = {}
            if not isinstance(data, dict):
                data = {}

        data[self.key] = [p.to_dict() for p in self._prompts]
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)

    def list_prompts(self) -> List[SystemPrompt]:
        return list(self._prompts)

    def get(self, prompt_id: str) -> Optional[SystemPrompt]:
        for prompt in self._prompts:
            if prompt.id == prompt_id:
                return prompt
        return None

    def _require(self, prompt_id: str) -> SystemPrompt:
        prompt = self.get(prompt_id)
        if prompt is None:
            raise ConfigurationError(f"No prompt with id {prompt_id}")
        return prompt

    def create(
        self,
        name: str = "New Prompt",
        content: str = "",
        description: str = "Description for new prompt",
        category: str = "General",
    ) -> SystemPrompt:
        prompt = SystemPrompt(id=_new_id(), name=name, description=description, content=content, category=category)
        self._prompts.append(prompt)
        self._save()
        return prompt

    def update(self, prompt_id: str, **changes) -> SystemPrompt:
        current = self._require(prompt_id)
        changes.pop("id", None)
        changes.pop("created_at", None)
        changes.pop("updated_at", None)
        updated = replace(current, updated_at=_now(), **changes)
        self._prompts = [updated if p.id == prompt_id else p for p in self._prompts]
        self._save()
        return updated

    def delete(self, prompt_id: str):
        self._require(prompt_id)
        self._prompts = [p for p in self._prompts if p.id != prompt_id]
        self._save()

    def toggle_favorite(self, prompt_id: str) -> SystemPrompt:
        current = self._require(prompt_id)
        updated = replace(current, is_favorite=not current.is_favorite)
        self._prompts = [updated if p.id == prompt_id else p for p in self._prompts]
        self._save()
        return updated

    def categories(self) -> List[str]:
        return ["All"] + list(dict.fromkeys(p.category for p in self._prompts))

    def search(self, term: str = "", category: str = "All") -> List[SystemPrompt]:
        term = term.lower()
        return [
            p for p in self._prompts
            if (term in p.name.lower() or term in p.description.lower())
            and (category == "All" or p.category == category)
        ]

    def export_prompts(self) -> Dict[str, Any]:
        return {"prompts": [p.to_dict() for p in self._prompts], "exported_at": _now()}

    def export_to_file(self, filename: str):
        with open(filename, "w") as f:
            json.dump(self.export_prompts(), f, indent=2)

    def import_prompts(self, data: Any) -> List[SystemPrompt]:
        """Append prompts from an exported document, each with a fresh id"""
        if not isinstance(data, dict) or not isinstance(data.get("prompts"), list):
            raise ConfigurationError("Invalid file format")

        imported = [replace(SystemPrompt.from_dict(p), id=_new_id()) for p in data["prompts"] if isinstance(p, dict)]
        self._prompts.extend(imported)
        self._save()
        return imported

    def import_from_file(self, filename: str) -> List[SystemPrompt]:
        try:
            with open(filename) as f:
                data = json.load(f)
        except ValueError as e:
            raise ConfigurationError("Invalid file format") from e
        return self.import_prompts(data)
