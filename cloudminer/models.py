"""Pydantic request models for the REST API."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class StartMiningRequest(_Request):
    user_address: str = Field(default="", alias="userAddress")
    plan: Optional[int] = None


class StopMiningRequest(_Request):
    user_address: str = Field(default="", alias="userAddress")


class ClearBlocksRequest(_Request):
    user_address: str = Field(default="", alias="userAddress")
    block_numbers: List[int] = Field(alias="blockNumbers")
