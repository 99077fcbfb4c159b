import pathlib
import sys
from typing import Tuple

import pytest


ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.app.billing import BillingService, CreditLedger, ProductCatalog  # noqa: E402
from backend.app.feature_gates import EntitlementPolicy  # noqa: E402
from backend.tests.fakes import (  # noqa: E402
    InMemoryBillingRepository,
    InMemoryClubDirectory,
    RecordingEventLogger,
    make_upgrade_product,
)


@pytest.fixture
def billing_repository() -> InMemoryBillingRepository:
    return InMemoryBillingRepository([make_upgrade_product()])


@pytest.fixture
def catalog(billing_repository: InMemoryBillingRepository) -> ProductCatalog:
    return ProductCatalog(billing_repository, ttl_seconds=0)


@pytest.fixture
def ledger(billing_repository: InMemoryBillingRepository, catalog: ProductCatalog) -> CreditLedger:
    return CreditLedger(billing_repository, catalog=catalog)


@pytest.fixture
def clubs() -> InMemoryClubDirectory:
    return InMemoryClubDirectory()


@pytest.fixture
def policy(catalog: ProductCatalog, ledger: CreditLedger, clubs: InMemoryClubDirectory) -> EntitlementPolicy:
    return EntitlementPolicy(catalog=catalog, ledger=ledger, clubs=clubs)


@pytest.fixture
def billing_components(
    billing_repository: InMemoryBillingRepository,
    catalog: ProductCatalog,
    ledger: CreditLedger,
) -> Tuple[BillingService, InMemoryBillingRepository, RecordingEventLogger]:
    event_logger = RecordingEventLogger()
    service = BillingService(
        repository=billing_repository,
        catalog=catalog,
        ledger=ledger,
        event_logger=event_logger,
    )
    return service, billing_repository, event_logger
