from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass(slots=True)
class ProjectConfig:
    status_file: str = "PROJECT_STATUS.md"


@dataclass(slots=True)
class ReviewConfig:
    max_diff_lines: int = 5000
    excluded_patterns: list[str] = field(default_factory=lambda: ["*.ipynb"])
    request_filename: str = "review_request_phase_{phase}.md"
    verdict_filename: str = "review_phase_{phase}.md"

    def request_name(self, phase: int) -> str:
        return self.request_filename.format(phase=phase)

    def verdict_name(self, phase: int) -> str:
        return self.verdict_filename.format(phase=phase)


@dataclass(slots=True)
class CommitConfig:
    message_tag: str = "feat"


@dataclass(slots=True)
class LoggingConfig:
    level: LogLevel = "INFO"


@dataclass(slots=True)
class PhaseGateConfig:
    project: ProjectConfig = field(default_factory=ProjectConfig)
    review: ReviewConfig = field(default_factory=ReviewConfig)
    commit: CommitConfig = field(default_factory=CommitConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> PhaseGateConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> PhaseGateConfig:
        return cls(
            project=ProjectConfig(**data.get("project", {})),
            review=ReviewConfig(**data.get("review", {})),
            commit=CommitConfig(**data.get("commit", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def to_dict(self) -> dict:
        return {
            "project": {
                "status_file": self.project.status_file,
            },
            "review": {
                "max_diff_lines": self.review.max_diff_lines,
                "excluded_patterns": list(self.review.excluded_patterns),
                "request_filename": self.review.request_filename,
                "verdict_filename": self.review.verdict_filename,
            },
            "commit": {
                "message_tag": self.commit.message_tag,
            },
            "logging": {
                "level": self.logging.level,
            },
        }


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        rendered = f"{value:.3f}".rstrip("0").rstrip(".")
        return rendered if rendered else "0"
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: PhaseGateConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    section_order = ["project", "review", "commit", "logging"]
    for section in section_order:
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> PhaseGateConfig:
    if not path.exists():
        return PhaseGateConfig.default()
    return PhaseGateConfig.from_dict(tomllib.loads(path.read_text(encoding="utf-8")))


def save_config(path: Path, config: PhaseGateConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")
