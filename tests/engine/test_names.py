# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for berth/engine/names.py -- resource naming and labels."""

import re

from berth.engine.names import (
    LABEL_AGENT,
    LABEL_CREATED,
    LABEL_MANAGED,
    LABEL_PROJECT,
    LABEL_VERSION,
    container_labels,
    container_name,
    generate_random_name,
    image_tag,
    parse_container_name,
    project_filter,
    validate_resource_name,
)


class TestContainerName:
    """Tests for container name construction and parsing."""

    def test_project_scoped(self) -> None:
        """Agent dev in project myapp is berth.myapp.dev."""
        assert container_name("myapp", "dev") == "berth.myapp.dev"

    def test_without_project(self) -> None:
        """Outside a project the project component is omitted."""
        assert container_name("", "dev") == "berth.dev"

    def test_parse_round_trip(self) -> None:
        """Parsing a built name recovers project and agent."""
        assert parse_container_name("berth.myapp.dev") == ("myapp", "dev")
        assert parse_container_name("/berth.myapp.dev") == ("myapp", "dev")
        assert parse_container_name("berth.dev") == ("", "dev")

    def test_parse_unmanaged(self) -> None:
        """Names outside the scheme parse to None."""
        assert parse_container_name("postgres") is None
        assert parse_container_name("other.myapp.dev") is None
        assert parse_container_name("berth.a.b.c") is None

    def test_image_tag(self) -> None:
        assert image_tag("myapp") == "berth-myapp:latest"


class TestValidateResourceName:
    """Tests for validate_resource_name."""

    def test_valid(self) -> None:
        assert validate_resource_name("dev") is None
        assert validate_resource_name("a1_b-c.d") is None

    def test_empty(self) -> None:
        assert validate_resource_name("") == "name cannot be empty"

    def test_leading_hyphen(self) -> None:
        reason = validate_resource_name("-dev")
        assert reason is not None
        assert "hyphen" in reason

    def test_bad_characters(self) -> None:
        reason = validate_resource_name("my agent")
        assert reason is not None
        assert "only [a-zA-Z0-9]" in reason

    def test_too_long(self) -> None:
        reason = validate_resource_name("a" * 129)
        assert reason is not None
        assert "too long" in reason
        assert validate_resource_name("a" * 128) is None


class TestLabels:
    """Tests for container_labels and project_filter."""

    def test_project_labels(self) -> None:
        labels = container_labels("myapp", "dev", version="1.0")
        assert labels[LABEL_MANAGED] == "true"
        assert labels[LABEL_PROJECT] == "myapp"
        assert labels[LABEL_AGENT] == "dev"
        assert labels[LABEL_VERSION] == "1.0"
        assert re.fullmatch(
            r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\dZ", labels[LABEL_CREATED]
        )

    def test_projectless_labels_omit_project(self) -> None:
        labels = container_labels("", "dev")
        assert LABEL_PROJECT not in labels
        assert LABEL_VERSION not in labels

    def test_project_filter(self) -> None:
        assert project_filter("myapp") == [
            "dev.berth.managed=true",
            "dev.berth.project=myapp",
        ]
        assert project_filter("") == ["dev.berth.managed=true"]


class TestGenerateRandomName:
    """Tests for generate_random_name."""

    def test_shape(self) -> None:
        """Names are adjective-noun and valid resource names."""
        for _ in range(20):
            name = generate_random_name()
            assert re.fullmatch(r"[a-z]+-[a-z]+", name)
            assert validate_resource_name(name) is None
