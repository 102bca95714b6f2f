from typing import Annotated

from fastapi import Depends, Request

from duejobs.scheduler.config import EngineConfig
from duejobs.scheduler.tick import Tick
from duejobs.store.base import JobStore

def get_store(request: Request) -> JobStore:
    return request.app.state.store

def get_tick(request: Request) -> Tick:
    return request.app.state.tick

def get_engine_config(request: Request) -> EngineConfig:
    return request.app.state.tick.config

# Dependencies wired up in the application lifespan
Store = Annotated[JobStore, Depends(get_store)]
TickRunner = Annotated[Tick, Depends(get_tick)]
Config = Annotated[EngineConfig, Depends(get_engine_config)]
