import pytest

from dockerslaves.definitions import (
    ImageIdContainerDefinition,
    JobBuildsContainersDefinition,
    LabelContainerDefinition,
    MatrixProjectContainersDefinition,
    SideContainerDefinition,
    find_label_token,
)
from dockerslaves.driver import CommandResult
from dockerslaves.exceptions import ContainerDefinitionError, ImageResolutionError


class TestImageIdContainerDefinition:
    """Pull policy of fixed image references."""

    def test_present_image_is_not_pulled(self, driver, fake_launcher):
        assert ImageIdContainerDefinition("maven:3").get_image(driver) == "maven:3"
        assert fake_launcher.commands("image pull") == []

    def test_force_pull_always_pulls(self, driver, fake_launcher):
        ImageIdContainerDefinition("maven:3", force_pull=True).get_image(driver)
        assert fake_launcher.commands("image inspect") == []
        assert fake_launcher.commands("image pull") == [["docker", "image", "pull", "maven:3"]]

    def test_absent_image_is_pulled(self, driver, fake_launcher):
        fake_launcher.script("image inspect", CommandResult(1))
        ImageIdContainerDefinition("maven:3").get_image(driver)
        assert fake_launcher.commands("image pull") == [["docker", "image", "pull", "maven:3"]]

    def test_failed_check_is_treated_as_absent(self, driver, fake_launcher):
        fake_launcher.script("image inspect", CommandResult(125, b"", b"daemon hiccup"))
        assert ImageIdContainerDefinition("maven:3").get_image(driver) == "maven:3"
        assert len(fake_launcher.commands("image pull")) == 1

    def test_pull_failure_propagates(self, driver, fake_launcher):
        fake_launcher.script("image inspect", CommandResult(1))
        fake_launcher.script("image pull", CommandResult(1))
        with pytest.raises(ImageResolutionError):
            ImageIdContainerDefinition("maven:3").get_image(driver)

    def test_empty_image_rejected(self):
        with pytest.raises(ContainerDefinitionError):
            ImageIdContainerDefinition("  ")


class TestLabels:
    """Images and constraints taken from matrix labels."""

    @pytest.mark.parametrize("label, prefix, expected", [
        ("docker:maven:3 constraint:arm", "docker:", "maven:3"),
        ("docker:maven:3 constraint:arm", "constraint:", "arm"),
        ("linux docker:node", "docker:", "node"),
        ("linux", "docker:", None),
        ("docker:", "docker:", None),
        (None, "docker:", None),
    ])
    def test_find_label_token(self, label, prefix, expected):
        assert find_label_token(label, prefix) == expected

    def test_label_definition_resolves_image(self, driver):
        assert LabelContainerDefinition("docker:node:20 linux").get_image(driver) == "node:20"

    def test_label_definition_without_image_token(self, driver):
        with pytest.raises(ContainerDefinitionError):
            LabelContainerDefinition("linux").get_image(driver)

    def test_matrix_definition(self):
        definition = MatrixProjectContainersDefinition(force_pull=True)
        image = definition.get_build_host_image("docker:golang constraint:big")
        assert image.image == "golang"
        assert image.force_pull is True
        assert definition.get_constraint("docker:golang constraint:big") == "big"
        assert definition.get_build_host_image("linux") is None
        assert definition.get_constraint("docker:golang") is None


class TestJobBuildsContainersDefinition:
    """The containers hosting a job's builds."""

    def test_constraint_falls_back_to_default(self):
        definition = JobBuildsContainersDefinition(ImageIdContainerDefinition("maven:3"))
        assert definition.side_containers == []
        assert definition.resolve_constraint("default") == "default"

    def test_blank_constraint_is_none(self):
        definition = JobBuildsContainersDefinition(ImageIdContainerDefinition("maven:3"), constraint="  ")
        assert definition.constraint is None

    def test_own_constraint_wins(self):
        definition = JobBuildsContainersDefinition(ImageIdContainerDefinition("maven:3"), constraint="arm")
        assert definition.resolve_constraint("default") == "arm"

    def test_duplicate_side_names_rejected(self):
        sides = [
            SideContainerDefinition("db", ImageIdContainerDefinition("postgres")),
            SideContainerDefinition("db", ImageIdContainerDefinition("mysql")),
        ]
        with pytest.raises(ContainerDefinitionError):
            JobBuildsContainersDefinition(ImageIdContainerDefinition("maven:3"), sides)
