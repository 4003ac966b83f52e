"""Pydantic request models for the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel

from memograph.models import Observation


class IngestRequest(BaseModel):
    ref: str
    text: str | None = None
    image_path: str | None = None

    def toObservation(self) -> Observation:
        return Observation(ref=self.ref, text=self.text, image_path=self.image_path)
