"""Root-level pytest fixtures for the cladeflow test suite.

Provides shared configuration fixtures following the Pydantic-based
architecture, plus small synthetic assembly collections. External tools are
replaced by tests/helpers/fake_tools.py, executed with the current
interpreter.
"""

import pytest
from pathlib import Path
import tempfile
import shutil

from cladeflow.catalog import InputCatalog
from cladeflow.schemas import ParamConfig, UserConfig, resolve_config
from cladeflow.setup_directories import setup_output_directories
from tests.helpers.assemblies import write_assemblies


# =============================================================================
# Input Fixtures
# =============================================================================

@pytest.fixture
def make_assemblies(temp_dir):
    """Factory writing FASTA files under ``temp_dir/assemblies``."""
    def _make(sample_ids, extension=".fasta"):
        write_assemblies(temp_dir / "assemblies", sample_ids, extension)
        return temp_dir / "assemblies"
    return _make


@pytest.fixture
def small_catalog(make_assemblies):
    """Nine samples in three clades of three (A, B, C)."""
    ids = [f"{clade}-{i:02d}" for clade in "ABC" for i in range(1, 4)]
    return InputCatalog.from_directory(make_assemblies(ids))


# =============================================================================
# Configuration Fixtures (Pydantic-based)
# =============================================================================

@pytest.fixture
def param_config(temp_dir):
    """Expert configuration with all defaults, pointed at a temp directory."""
    return ParamConfig(input=str(temp_dir / "assemblies"), base_dir=str(temp_dir / "run"))


@pytest.fixture
def internal_config(param_config):
    """Fully validated runtime configuration (no overrides)."""
    return resolve_config(param_config, None, None)


@pytest.fixture
def make_config(param_config):
    """Factory fixture for creating custom test configs.

    Returns a callable that accepts UserConfig-compatible kwargs.

    Examples
    --------
    >>> def test_custom_chunk_size(make_config):
    ...     config = make_config(CHUNK_SIZE=50)
    ...     assert config.chunking.chunk_size == 50
    """
    def _make(**user_overrides):
        """Create InternalConfig with user overrides."""
        if user_overrides:
            user = UserConfig(**user_overrides)
            return resolve_config(param_config, user, None)
        else:
            return resolve_config(param_config, None, None)

    return _make


# =============================================================================
# Directory Fixtures
# =============================================================================

@pytest.fixture
def temp_dir():
    """Temporary directory that is cleaned up after test."""
    d = tempfile.mkdtemp()
    yield Path(d)
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def output_dirs(temp_dir):
    """Standard run directory structure under ``temp_dir/run``."""
    return setup_output_directories(temp_dir / "run")
