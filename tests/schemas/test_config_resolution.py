"""Test config resolution and validation with Pydantic."""

import pytest
from pydantic import ValidationError

from cladeflow.errors import ConfigurationError
from cladeflow.schemas import ParamConfig, UserConfig, InternalConfig
from cladeflow.schemas.resolve import deep_merge, resolve_config

pytestmark = [pytest.mark.unit, pytest.mark.schemas]

REQUIRED = {"INPUT_DIR": "/data/assemblies", "BASE_DIR": "/scratch/run"}


class TestConfigResolution:
    """Test resolve_config() precedence and merging."""

    def test_resolve_config_all_defaults(self):
        """Resolving with only the required paths uses every ParamConfig default."""
        config = resolve_config(ParamConfig(), UserConfig(**REQUIRED), None)

        assert isinstance(config, InternalConfig)
        assert config.chunking.chunk_size == 150
        assert config.chunking.min_group_size == 3
        assert config.execution.max_workers == 4
        assert config.execution.total_memory_gb is None
        assert config.tools.clustering.name == "poppunk"
        assert config.tools.clustering.threads == 8
        assert config.tools.clustering.memory_gb == 32.0
        assert config.tools.alignment.threads == 16
        assert config.tools.filtering.threads == 8
        assert config.tools.tree.threads == 4
        assert config.logging.level == "INFO"

    def test_user_config_overrides_param_config(self):
        user = UserConfig(CHUNK_SIZE=100, POPPUNK_MEMORY_GB=48, **REQUIRED)
        config = resolve_config(ParamConfig(), user, None)

        assert config.chunking.chunk_size == 100
        assert config.tools.clustering.memory_gb == 48.0
        # Untouched fields keep their defaults
        assert config.tools.clustering.threads == 8
        assert config.tools.clustering.commands[0][0] == "poppunk"

    def test_user_dict_accepted(self):
        config = resolve_config(ParamConfig(), dict(REQUIRED, MAX_WORKERS=2), None)
        assert config.execution.max_workers == 2

    def test_stage_timeout_applies_to_all_stage_tools(self):
        config = resolve_config(ParamConfig(), UserConfig(STAGE_TIMEOUT_MINUTES=30, **REQUIRED))

        assert config.tools.alignment.timeout_minutes == 30
        assert config.tools.filtering.timeout_minutes == 30
        assert config.tools.tree.timeout_minutes == 30
        assert config.tools.clustering.timeout_minutes == 720

    def test_nested_tool_override_keeps_other_fields(self):
        user = UserConfig(tools={"tree": {"commands": ["fasttree", "-nt", "{input}"],
                                          "artifact_glob": "*.nwk"}}, **REQUIRED)
        config = resolve_config(ParamConfig(), user)

        assert config.tools.tree.commands == [["fasttree", "-nt", "{input}"]]
        assert config.tools.tree.artifact_glob == "*.nwk"
        assert config.tools.tree.threads == 4

    def test_nested_section_wins_over_flat_alias(self):
        user = UserConfig(CHUNK_SIZE=100, chunking={"chunk_size": 50},
                          POPPUNK_THREADS=2, tools={"clustering": {"threads": 6}}, **REQUIRED)
        config = resolve_config(ParamConfig(), user)

        assert config.chunking.chunk_size == 50
        assert config.tools.clustering.threads == 6

    def test_param_values_used_when_user_silent(self):
        param = ParamConfig(input="/in", base_dir="/out")
        config = resolve_config(param, None, None)

        assert config.input == "/in"
        assert config.base_dir == "/out"


class TestValidationErrors:
    """Invalid layers surface as ConfigurationError."""

    def test_missing_input_rejected(self):
        with pytest.raises(ConfigurationError, match="input"):
            resolve_config(ParamConfig(), UserConfig(BASE_DIR="/out"))

    def test_missing_base_dir_rejected(self):
        with pytest.raises(ConfigurationError, match="base_dir"):
            resolve_config(ParamConfig(), UserConfig(INPUT_DIR="/in"))

    def test_min_group_size_below_three_rejected(self):
        with pytest.raises(ConfigurationError, match="min_group_size"):
            resolve_config(ParamConfig(), UserConfig(MIN_GROUP_SIZE=2, **REQUIRED))

    def test_negative_chunk_size_rejected(self):
        with pytest.raises(ConfigurationError, match="chunk_size"):
            resolve_config(ParamConfig(), UserConfig(CHUNK_SIZE=-5, **REQUIRED))

    def test_zero_memory_rejected(self):
        with pytest.raises(ConfigurationError, match="memory_gb"):
            resolve_config(ParamConfig(), UserConfig(IQTREE_MEMORY_GB=0, **REQUIRED))

    def test_empty_command_rejected(self):
        user = UserConfig(tools={"alignment": {"commands": [[]]}}, **REQUIRED)
        with pytest.raises(ConfigurationError):
            resolve_config(ParamConfig(), user)

    def test_bad_user_dict_rejected(self):
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            resolve_config(ParamConfig(), dict(REQUIRED, MAX_WORKERS="many"))


class TestInternalConfig:

    def test_internal_config_is_frozen(self):
        config = resolve_config(ParamConfig(), UserConfig(**REQUIRED))
        with pytest.raises(ValidationError):
            config.chunking = None

    def test_internal_config_rejects_unknown_fields(self):
        data = resolve_config(ParamConfig(), UserConfig(**REQUIRED)).model_dump()
        data["surprise"] = 1
        with pytest.raises(ValidationError):
            InternalConfig.model_validate(data)


def test_deep_merge_nested():
    base = {"a": 1, "b": {"c": 2, "d": 3}}
    merged = deep_merge(base, {"b": {"d": 4, "e": 5}, "f": 6}, {"a": 0})

    assert merged == {"a": 0, "b": {"c": 2, "d": 4, "e": 5}, "f": 6}
    # Inputs are not mutated
    assert base == {"a": 1, "b": {"c": 2, "d": 3}}


def test_deep_merge_replaces_lists():
    merged = deep_merge({"commands": [["a"], ["b"]]}, {"commands": [["c"]]})
    assert merged == {"commands": [["c"]]}
