import pytest

from dockerslaves.datacls import ContainerInstance, JobBuildsContainersContext, ProcStarter
from dockerslaves.exceptions import ProvisioningError


class TestContainerInstance:
    """Identity assignment of runtime containers."""

    def test_id_assigned_once(self):
        instance = ContainerInstance(image_name="maven:3")
        assert not instance.is_created
        instance.assign_id("abcdef0123456789")
        assert instance.is_created
        assert str(instance) == "abcdef012345 (maven:3)"
        with pytest.raises(ProvisioningError):
            instance.assign_id("other")

    def test_empty_id_rejected(self):
        with pytest.raises(ProvisioningError):
            ContainerInstance(image_name="maven:3").assign_id("")

    def test_invalidate(self):
        instance = ContainerInstance(image_name="maven:3", id="abc")
        instance.invalidate()
        assert not instance.is_created
        assert instance.short_id() == "<not created>"


class TestJobBuildsContainersContext:
    def test_checkout_flips_phase(self):
        context = JobBuildsContainersContext()
        assert context.is_pre_scm
        context.scm_checkout_completed()
        assert not context.is_pre_scm

    def test_carry_over_ignores_uncreated_remoting(self):
        previous = JobBuildsContainersContext(remoting_container=ContainerInstance(image_name="jenkinsci/slave"))
        assert JobBuildsContainersContext.carry_over(previous, "default").remoting_container is None

    def test_carry_over_copies(self):
        previous = JobBuildsContainersContext(
            remoting_container=ContainerInstance(image_name="jenkinsci/slave", id="r")
        )
        context = JobBuildsContainersContext.carry_over(previous, "arm")
        context.remoting_container.invalidate()
        assert previous.remoting_container.id == "r"
        assert context.constraint == "arm"


class TestProcStarter:
    """Commands and their masks."""

    def test_string_command_is_shell_split(self):
        starter = ProcStarter.from_command("mvn -B 'clean install'", "/ws")
        assert starter.cmds == ["mvn", "-B", "clean install"]
        assert starter.masks is None
        assert not starter.is_masked(0)

    def test_secret_arguments_are_masked(self):
        starter = ProcStarter.from_command(["login", "-p", "hunter2"], "/ws", secrets=["hunter2", ""])
        assert starter.masks == [False, False, True]
        assert starter.is_masked(2)

    def test_short_mask_list(self):
        starter = ProcStarter(pwd="/ws", cmds=["a", "b"], masks=[True])
        assert starter.is_masked(0)
        assert not starter.is_masked(1)

    def test_embedded_secret_masks_the_whole_argument(self):
        starter = ProcStarter.from_command("mvn deploy -Dtoken=s3cr3t", "/ws", secrets=["s3cr3t"])
        assert starter.masks == [False, False, True]
        assert starter.masked_command() == "mvn deploy ********"

    def test_masked_command_without_secrets(self):
        starter = ProcStarter.from_command(["make", "-j4"], "/ws", secrets=["s3cr3t"])
        assert starter.masked_command() == "make -j4"
