"""Pytest configuration and fixtures."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from restview.api.rest_service import GenericRestService
from restview.core.predicates import PredicateBuilder
from restview.core.projection import ProjectionEngine
from restview.core.registry import ShapeRegistry
from restview.core.resolver import TypeFieldResolver
from restview.database.repository import RepositoryRegistry
from sample_domain.models import Base, Status, Tag, Task, User


@pytest.fixture
def session():
    """Create a temporary in-memory database session for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def seeded(session):
    """Two users, three tasks and two tags."""
    alice = User(id=1, name="Alice", email="alice@example.com")
    bob = User(id=2, name="Bob", email="bob@example.com")
    carol = User(id=3, name="Carol", email=None)
    urgent = Tag(id=1, label="urgent")
    home = Tag(id=2, label="home")

    session.add_all(
        [
            alice,
            bob,
            carol,
            urgent,
            home,
            Task(
                id=1,
                name="Write foo report",
                description="quarterly numbers",
                status=Status.ACTIVE,
                priority=2,
                done=False,
                estimate=Decimal("1.50"),
                owner=alice,
                tags={urgent},
                created_on=date(2024, 1, 5),
            ),
            Task(
                id=2,
                name="Groceries",
                description="milk and FOOD",
                status=Status.ACTIVE,
                priority=1,
                done=True,
                owner=bob,
                tags={home, urgent},
            ),
            Task(
                id=3,
                name="Old foo cleanup",
                description=None,
                status=Status.ARCHIVED,
                priority=2,
                done=True,
                owner=carol,
            ),
        ]
    )
    session.commit()
    return session


@pytest.fixture
def resolver():
    return TypeFieldResolver()


@pytest.fixture
def shapes():
    registry = ShapeRegistry()
    registry.scan(["sample_domain"])
    return registry


@pytest.fixture
def engine(resolver, shapes):
    return ProjectionEngine(resolver=resolver, shapes=shapes)


@pytest.fixture
def service(seeded, resolver, shapes, engine):
    return GenericRestService(
        registry=RepositoryRegistry.from_base(seeded, Base, resolver),
        shapes=shapes,
        engine=engine,
        predicates=PredicateBuilder(resolver),
    )
