"""Shared fixtures: key-value stores, profile store, reference catalog and engine."""

import pytest

from facturier.engine import InvoiceEngine
from facturier.learning.catalog import ReferenceCatalog
from facturier.learning.profiles import ProfileStore
from facturier.storage import InMemoryKeyValueStore, SupplierLocks


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def locks():
    return SupplierLocks()


@pytest.fixture
def catalog(store, locks):
    return ReferenceCatalog(store, locks)


@pytest.fixture
def profile_store(store, locks):
    return ProfileStore(store, locks)


@pytest.fixture
def engine(store, locks):
    return InvoiceEngine(store, locks, translation_mode="dictionary")
