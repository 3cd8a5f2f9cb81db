# -*- coding: utf-8 -*-
"""Pytest configuration and shared fixtures."""

import pytest

from agritrace.ledger.batch_registry import BatchRegistry
from agritrace.ledger.config import LedgerConfig, reset_config, set_config
from agritrace.ledger.interfaces import ManualClock, RecordingTransferSink
from agritrace.ledger.setup import ProvenanceLedgerService, reset_ledger_service
from agritrace.ledger.shipment_ledger import ShipmentLedger
from agritrace.ledger.transfer_ledger import TransferLedger

AUTHORITY = "ST2AUTH"
FULL_HASH = "a1b2c3d4e5f6789012345678901234567890abcdef1234567890abcdef123456"
CERT_HASH = "b2c3d4e5f6789012345678901234567890abcdef1234567890abcdef12345678"
FULL_GEO = "45.5231,-122.6765"


@pytest.fixture(autouse=True)
def _isolate_singletons():
    """Reset the process-wide config and service around each test."""
    set_config(LedgerConfig())
    yield
    reset_ledger_service()
    reset_config()


@pytest.fixture
def config():
    return LedgerConfig()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def sink():
    return RecordingTransferSink()


@pytest.fixture
def registry(config, clock, sink):
    """BatchRegistry with the authority already set."""
    engine = BatchRegistry(config, clock, sink)
    engine.set_authority(AUTHORITY)
    return engine


@pytest.fixture
def shipments(config, clock, sink):
    """ShipmentLedger with the authority already set."""
    engine = ShipmentLedger(config, clock, sink)
    engine.set_authority(AUTHORITY)
    return engine


@pytest.fixture
def transfers(config, clock, sink):
    """TransferLedger with the authority already set."""
    engine = TransferLedger(config, clock, sink)
    engine.set_authority(AUTHORITY)
    return engine


@pytest.fixture
def service(config, clock, sink):
    """ProvenanceLedgerService with the authority bootstrapped."""
    svc = ProvenanceLedgerService(config=config, clock=clock, sink=sink)
    assert svc.bootstrap_authority(AUTHORITY).ok
    return svc


@pytest.fixture
def kale_batch():
    """Keyword arguments of a valid kale batch registration."""
    return {
        "hash": FULL_HASH,
        "title": "Organic Kale",
        "description": "Fresh organic kale from farm",
        "harvest_date": 1640995200,
        "batch_size": 100,
        "cert_body": "USDA Organic",
        "geo_location": "California, USA",
        "quality_metric": 95,
    }
