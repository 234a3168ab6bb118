"""Pydantic models for command line request validation."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from .frontend.expand import parse_cfgspec


class IndexRequest(BaseModel):
    """One indexing run: a single input plus its output destinations."""

    inputs: list[str] = Field(..., description="Free arguments; exactly one is allowed")
    cfg: list[str] = Field(default_factory=list, description="--cfg specs")
    search_paths: list[Path] = Field(default_factory=list, description="-L directories")
    sysroot: Path | None = Field(None, description="System root override")
    tags: list[Path] = Field(default_factory=list, description="Tag file destinations")
    tags_append: bool = Field(default=False, description="Append to tag files, no header")
    node_id_map: list[Path] = Field(default_factory=list, description="Node-span destinations")
    type_map: list[Path] = Field(default_factory=list, description="Type table destinations")

    @field_validator("inputs")
    @classmethod
    def validate_inputs(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("no input filename given")
        if len(v) > 1:
            raise ValueError("multiple input found")
        if not v[0]:
            raise ValueError("input filename is empty")
        return v

    @field_validator("cfg")
    @classmethod
    def validate_cfg(cls, v: list[str]) -> list[str]:
        for spec in v:
            parse_cfgspec(spec)
        return v

    @property
    def input(self) -> str:
        return self.inputs[0]

    @property
    def wants_output(self) -> bool:
        return bool(self.tags or self.node_id_map or self.type_map)
