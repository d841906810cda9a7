from datetime import datetime, timedelta
from typing import Callable, Iterator

import pytest
from sqlalchemy.orm import Session

from config import Settings
from database import create_db_engine, init_db, make_session_factory
from engine import AnalyticsEngine


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 15, 12, 0))


@pytest.fixture
def session_factory() -> Iterator[Callable[[], Session]]:
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="sqlite://", timezone="UTC")


@pytest.fixture
def make_engine(session_factory, clock) -> Iterator[Callable[..., AnalyticsEngine]]:
    created: list[AnalyticsEngine] = []

    def factory(sleep=lambda _secs: None, **overrides) -> AnalyticsEngine:
        engine_settings = Settings(database_url="sqlite://", timezone="UTC", **overrides)
        engine = AnalyticsEngine(
            session_factory, engine_settings, clock=clock, sleep=sleep
        )
        created.append(engine)
        return engine

    yield factory
    for engine in created:
        engine.shutdown()


@pytest.fixture
def analytics(make_engine) -> AnalyticsEngine:
    return make_engine()
