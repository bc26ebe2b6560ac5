import pytest

from field_validation.config_loader import ConfigLoader
from field_validation.rule_loader import RuleCatalog
from field_validation.translator import CatalogTranslator


@pytest.fixture(scope="session")
def config_loader():
    """ConfigLoader over the bundled local-config.yaml."""
    return ConfigLoader()


@pytest.fixture(scope="session")
def catalog(config_loader):
    return RuleCatalog.from_config(config_loader)


@pytest.fixture(scope="session")
def translator(config_loader):
    return CatalogTranslator.from_config(config_loader)
