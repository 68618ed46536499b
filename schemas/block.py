"""
Block data models
A block is a named phase / subdivision of a project that groups plots.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BlockStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    COMPLETED = "completed"


class BlockBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Block name", examples=["Phase 1"])
    description: Optional[str] = Field(None, max_length=1000)
    status: BlockStatus = Field(default=BlockStatus.ACTIVE)


class BlockCreate(BlockBase):
    pass


class BlockUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    status: Optional[BlockStatus] = None


class Block(BlockBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
