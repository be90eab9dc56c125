"""Pydantic request bodies for API endpoints."""

from pydantic import BaseModel


class StartSessionBody(BaseModel):
    user_id: str


class ChoiceBody(BaseModel):
    choice_id: str
