"""
Unit tests for the domain model and its JSON shape.
"""

from asmgr.agents import AgentKind
from asmgr.models import (
    Activity,
    FollowedWindow,
    Group,
    Instance,
    Settings,
    Status,
    new_group_id,
    new_project_id,
    new_ulid,
)


class TestIds:
    """Tests for id generation"""

    def test_ulid_shape(self):
        ulid = new_ulid()

        assert len(ulid) == 26
        assert ulid == ulid.upper()

    def test_ulids_sort_by_time(self):
        assert new_ulid(now_ms=1000) < new_ulid(now_ms=2000)

    def test_group_and_project_prefixes(self):
        assert new_group_id().startswith("grp_")
        assert new_project_id("My App!").startswith("proj_my-app_")
        assert new_project_id("???").startswith("proj_project_")


class TestInstance:
    """Tests for Instance"""

    def test_session_name(self):
        assert Instance(id="01ABC", name="a", path="/p").session_name == "asmgr-01ABC"

    def test_persisted_keys_are_camel_case(self):
        inst = Instance(
            id="X", name="demo", path="/p", auto_yes=True, group_id="grp_1",
            followed_windows=[FollowedWindow(index=1, name="shell")],
        )

        data = inst.to_dict()

        assert data["autoYes"] is True
        assert data["groupId"] == "grp_1"
        assert data["followedWindows"][0] == {
            "index": 1, "name": "shell", "agent": "terminal",
            "resumeSessionId": "", "autoYes": False, "notes": "",
        }
        assert "status" not in data
        assert "activity" not in data

    def test_missing_agent_means_claude(self):
        inst = Instance.from_dict({"id": "X", "name": "demo", "path": "/p"})

        assert inst.agent == AgentKind.CLAUDE
        assert inst.followed_windows == []

    def test_unknown_agent_is_custom(self):
        inst = Instance.from_dict({"id": "X", "name": "n", "path": "/p", "agent": "newtool"})

        assert inst.agent == AgentKind.CUSTOM

    def test_round_trip_ignores_derived_state(self):
        inst = Instance(id="X", name="demo", path="/p", notes="hi",
                        followed_windows=[FollowedWindow(index=2, name="w", custom_command="htop")])
        inst.status = Status.RUNNING
        inst.activity = Activity.BUSY

        assert Instance.from_dict(inst.to_dict()) == inst

    def test_clear_derived(self):
        fw = FollowedWindow(index=1, name="shell", dead=True, activity=Activity.WAITING)
        inst = Instance(id="X", name="demo", path="/p", followed_windows=[fw])
        inst.status = Status.RUNNING
        inst.last_line = "x"
        inst.window_names = {0: "claude"}

        inst.clear_derived()

        assert inst.status == Status.STOPPED
        assert inst.last_line == ""
        assert inst.window_names == {}
        assert fw.dead is False
        assert fw.activity == Activity.IDLE

    def test_window_auto_yes(self):
        inst = Instance(id="X", name="demo", path="/p", auto_yes=True,
                        followed_windows=[FollowedWindow(index=1, name="w", auto_yes=False)])

        assert inst.window_auto_yes(0) is True
        assert inst.window_auto_yes(1) is False
        assert inst.window_auto_yes(9) is False

    def test_copy_config_drops_tabs_and_token(self):
        inst = Instance(id="X", name="demo", path="/p", resume_session_id="tok",
                        favorite=True, followed_windows=[FollowedWindow(index=1, name="w")])

        copy = inst.copy_config("Y")

        assert copy.id == "Y"
        assert copy.name == "demo"
        assert copy.resume_session_id == ""
        assert copy.followed_windows == []
        assert copy.favorite is False


class TestGroupAndSettings:
    """Tests for Group and Settings"""

    def test_group_round_trip(self):
        group = Group(id="grp_1", name="backend", color="#FF0000", collapsed=True)

        assert Group.from_dict(group.to_dict()) == group

    def test_settings_defaults_from_empty(self):
        assert Settings.from_dict({}) == Settings()

    def test_settings_bad_ints(self):
        settings = Settings.from_dict({"cursor": "abc", "splitFocus": None})

        assert settings.cursor == 0
        assert settings.split_focus == 0
