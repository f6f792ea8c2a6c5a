"""Tests for property file reading and Config building."""

from pathlib import Path

import pytest

from s3upload.errors import ConfigurationError
from s3upload.utils.config_loader import (
    DEFAULT_DEPLOY_PATH_MAPPINGS,
    Config,
    DeployPathStrategy,
    ensure_separators,
    force_ending_with_separator,
    load_config,
    load_project_properties,
    parse_properties,
    read_properties_file,
)


class TestParseProperties:
    """Tests for Java properties syntax."""

    def test_separators_and_comments(self):
        """Test '=', ':' and whitespace separators with comments skipped."""
        text = """
# comment
! another comment
project.name=shop
aws.region: us-east-1
patch.path   hotfix
"""
        properties = parse_properties(text)
        assert properties == {
            "project.name": "shop",
            "aws.region": "us-east-1",
            "patch.path": "hotfix",
        }

    def test_value_containing_colons(self):
        """Test that only the first separator splits key from value."""
        properties = parse_properties("compile.mapping.path.groovy=/src/scripts/:/build/scripts/")
        assert properties["compile.mapping.path.groovy"] == "/src/scripts/:/build/scripts/"

    def test_line_continuation(self):
        """Test backslash continuation joins lines."""
        text = "deploy.path.mappings.web=/src/main/webapp/:/,\\\n    /web/:/static/\n"
        properties = parse_properties(text)
        assert properties["deploy.path.mappings.web"] == "/src/main/webapp/:/,/web/:/static/"

    def test_key_without_value(self):
        """Test a bare key maps to an empty value."""
        assert parse_properties("deploy.path")["deploy.path"] == ""

    def test_continuation_at_end_of_input(self):
        """Test a last line ending in a backslash still yields its property."""
        assert parse_properties("a=1\nb=two\\") == {"a": "1", "b": "two"}

    def test_even_backslashes_do_not_continue(self):
        properties = parse_properties("a=x\\\\\nb=2")
        assert properties == {"a": "x\\\\", "b": "2"}


class TestReadPropertiesFile:
    """Tests for reading property files from disk."""

    def test_read_properties(self, tmp_path: Path):
        """Test reading a .properties file."""
        config_file = tmp_path / "s3upload.properties"
        config_file.write_text("project.name=shop\n")
        assert read_properties_file(config_file) == {"project.name": "shop"}

    def test_read_yaml_flattens_keys(self, tmp_path: Path):
        """Test YAML documents become dotted keys."""
        config_file = tmp_path / "s3upload.yaml"
        config_file.write_text(
            """
deploy:
  path:
    strategy: FROM_MAPPINGS
  auto:
    source:
      mapping: false
project:
  name: shop
"""
        )
        properties = read_properties_file(config_file)
        assert properties["deploy.path.strategy"] == "FROM_MAPPINGS"
        assert properties["deploy.auto.source.mapping"] == "false"
        assert properties["project.name"] == "shop"

    def test_nonexistent_file(self):
        """Test loading non-existent file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            read_properties_file("nonexistent.properties")

    def test_invalid_yaml(self, tmp_path: Path):
        """Test malformed YAML raises ConfigurationError."""
        config_file = tmp_path / "s3upload.yaml"
        config_file.write_text("deploy: [unclosed bracket\n")
        with pytest.raises(ConfigurationError):
            read_properties_file(config_file)

    def test_yaml_not_a_mapping(self, tmp_path: Path):
        """Test a YAML list is rejected."""
        config_file = tmp_path / "s3upload.yml"
        config_file.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            read_properties_file(config_file)

    def test_project_without_property_file(self, tmp_path: Path):
        """Test that a project without property file yields no properties."""
        assert load_project_properties(tmp_path) == {}

    def test_project_property_file_is_found(self, tmp_path: Path):
        """Test that s3upload.properties in the base dir is used."""
        (tmp_path / "s3upload.properties").write_text("bucket.name=releases\n")
        assert load_project_properties(tmp_path) == {"bucket.name": "releases"}


class TestLoadConfig:
    """Tests for load_config function."""

    def test_defaults(self):
        """Test configuration built from an empty property bag."""
        config = load_config({})

        assert isinstance(config, Config)
        assert config.deploy_path_strategy == DeployPathStrategy.FROM_SOURCES
        assert config.strategy_configured is False
        assert config.deploy_path_prefix == ""
        assert config.auto_source_mapping is True
        assert config.deploy_source_output == "/WEB-INF/classes/"
        assert config.deploy_path_mappings == DEFAULT_DEPLOY_PATH_MAPPINGS
        assert config.deploy_path is None
        assert config.last_versions_path == "last"
        assert config.versions_path == "versions"
        assert config.patch_path == "patch"
        assert config.aws_region == "eu-west-1"
        assert config.project_suffix_mappings == {"esb": "esb", "magnolia": "webapp"}

    def test_default_behaviors(self):
        """Test java and groovy compile to class files with '$' siblings."""
        config = load_config({})
        for extension in ("java", "groovy"):
            behavior = config.behavior_for(extension)
            assert behavior.output_extension == "class"
            assert behavior.subclasses_separator == "$"
        assert config.behavior_for("xml") is None
        assert config.behavior_for("") is None

    def test_extension_behavior_keys(self):
        """Test compile.mapping.* keys build a behavior."""
        config = load_config(
            {
                "compile.mapping.extension.kt": "class",
                "compile.mapping.path.kt": "src/main/kotlin:target/classes, /gen/:/out/",
                "compile.mapping.subclasses.kt": "$",
            }
        )
        behavior = config.behavior_for("kt")
        assert behavior.extension == "kt"
        assert behavior.output_extension == "class"
        assert behavior.path_mappings == (
            ("/src/main/kotlin/", "/target/classes/"),
            ("/gen/", "/out/"),
        )
        assert behavior.subclasses_separator == "$"

    def test_deploy_mappings_come_before_defaults(self):
        """Test user deploy mappings are consulted first and shadow defaults."""
        config = load_config(
            {"deploy.path.mappings.web": "src/main/webapp:static,/src/main/java/:/classes/"}
        )
        assert config.deploy_path_mappings[0] == ("/src/main/webapp/", "/static/")
        assert config.deploy_path_mappings[1] == ("/src/main/java/", "/classes/")
        assert ("/src/main/resources/", "/WEB-INF/classes/") in config.deploy_path_mappings
        assert ("/src/main/java/", "/WEB-INF/classes/") not in config.deploy_path_mappings

    @pytest.mark.parametrize("strategy", list(DeployPathStrategy))
    def test_valid_strategies(self, strategy):
        """Test each strategy name is accepted."""
        config = load_config({"deploy.path.strategy": strategy.value})
        assert config.deploy_path_strategy == strategy
        assert config.strategy_configured is True

    def test_strategy_is_case_sensitive(self):
        """Test a strategy name with wrong case is a configuration error."""
        with pytest.raises(ConfigurationError, match="deploy.path.strategy"):
            load_config({"deploy.path.strategy": "from_sources"})

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("", ""),
            ("/", ""),
            ("shop", "shop/"),
            ("/shop", "shop/"),
            ("shop/", "shop/"),
            ("/a/b/", "a/b/"),
        ],
    )
    def test_prefix_normalization(self, value, expected):
        """Test the prefix never starts with, but ends with, a separator."""
        assert load_config({"deploy.path.prefix": value}).deploy_path_prefix == expected

    def test_invalid_boolean(self):
        """Test a non boolean auto mapping flag is rejected."""
        with pytest.raises(ConfigurationError, match="deploy.auto.source.mapping"):
            load_config({"deploy.auto.source.mapping": "maybe"})

    def test_auto_mapping_disabled(self):
        """Test the auto mapping flag can be turned off."""
        assert load_config({"deploy.auto.source.mapping": "false"}).auto_source_mapping is False

    def test_malformed_path_pairs(self):
        """Test path pairs without target are rejected."""
        with pytest.raises(ConfigurationError, match="source:target"):
            load_config({"compile.mapping.path.java": "/src/"})

    def test_empty_deploy_path_is_kept(self):
        """Test an empty deploy.path override is distinct from no override."""
        assert load_config({"deploy.path": ""}).deploy_path == ""

    def test_bucket_and_project_name(self):
        """Test bucket name defaults to '<project>-releases'."""
        config = load_config({})
        assert config.resolve_project_name("shop") == "shop"
        assert config.resolve_bucket_name("shop") == "shop-releases"

        config = load_config({"project.name": "store", "bucket.name": "all-releases"})
        assert config.resolve_project_name("shop") == "store"
        assert config.resolve_bucket_name("store") == "all-releases"

    def test_suffix_mapping_override(self):
        """Test mapping.project.* keys extend the suffix table."""
        config = load_config({"mapping.project.api": "rest", "mapping.project.esb": "bus"})
        assert config.project_suffix_mappings["api"] == "rest"
        assert config.project_suffix_mappings["esb"] == "bus"
        assert config.project_suffix_mappings["magnolia"] == "webapp"


class TestSeparatorHelpers:
    """Tests for folder fragment normalization."""

    def test_ensure_separators(self):
        assert ensure_separators("a/b") == "/a/b/"
        assert ensure_separators("") == "/"
        assert ensure_separators("/x/") == "/x/"

    def test_force_ending_keep_empty(self):
        assert force_ending_with_separator("", keep_empty=True) == ""
        assert force_ending_with_separator("", keep_empty=False) == "/"
