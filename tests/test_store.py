import pytest

from dockerslaves.datacls import ContainerInstance, JobBuildsContainersContext
from dockerslaves.exceptions import ConfigValidationError
from dockerslaves.store import ContextStore


def sample_context():
    return JobBuildsContainersContext(
        remoting_container=ContainerInstance(image_name="jenkinsci/slave", id="r3m0t1ng"),
        side_containers={"db": ContainerInstance(image_name="postgres")},
        build_containers=[ContainerInstance(image_name="maven:3", id="b1")],
        constraint="arm",
        is_pre_scm=False,
    )


class TestContextStore:
    """Persistence of the last build context per job."""

    def test_missing_context(self, tmp_path):
        assert ContextStore(tmp_path).load("app") is None

    def test_save_then_load(self, tmp_path):
        store = ContextStore(tmp_path / "state")
        store.save("app", sample_context())

        assert store.path_for("app") == tmp_path / "state" / "app" / "context.json"
        loaded = store.load("app")
        assert loaded.remoting_container.id == "r3m0t1ng"
        assert loaded.constraint == "arm"
        assert loaded.build_containers[0].id == "b1"
        assert list((tmp_path / "state" / "app").iterdir()) == [store.path_for("app")]

    def test_next_build_carries_only_remoting(self, tmp_path):
        store = ContextStore(tmp_path)
        store.save("app", sample_context())

        context = JobBuildsContainersContext.carry_over(store.load("app"), "default")

        assert context.remoting_container.id == "r3m0t1ng"
        assert context.build_containers == []
        assert context.side_containers == {}
        assert context.is_pre_scm

    def test_unreadable_context_is_ignored(self, tmp_path, caplog):
        store = ContextStore(tmp_path)
        path = store.path_for("app")
        path.parent.mkdir(parents=True)
        path.write_text("{not json")

        with caplog.at_level("WARNING", logger="dockerslaves.store"):
            assert store.load("app") is None
        assert "Ignoring unreadable context" in caplog.text

    def test_forget(self, tmp_path):
        store = ContextStore(tmp_path)
        store.save("app", sample_context())
        assert store.forget("app") is True
        assert store.load("app") is None
        assert store.forget("app") is False

    @pytest.mark.parametrize("job_name", ["..", ".", "../outside", "a/b", "", "  "])
    def test_names_leaving_the_state_dir_are_rejected(self, tmp_path, job_name):
        store = ContextStore(tmp_path / "state")
        with pytest.raises(ConfigValidationError, match="Invalid job name"):
            store.path_for(job_name)

    def test_forget_never_touches_files_outside_the_state_dir(self, tmp_path):
        outside = tmp_path / "context.json"
        outside.write_text("{}")
        store = ContextStore(tmp_path / "state")

        with pytest.raises(ConfigValidationError):
            store.forget("..")
        assert outside.exists()
