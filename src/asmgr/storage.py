"""
Per-project persistence for asmgr.

Layout under the config root:

    projects.json               catalog + active project id
    default/                    the implicit "no project" namespace
        sessions.json
        groups.json
        settings.json
        project.lock
    <projectId>/
        ...same four files...

Every write goes to a temp file, is fsynced, then renamed over the target.
Reads tolerate missing files. Only the process holding a project's lock
writes that project's files.
"""

import json
import os
import shutil
from pathlib import Path
from typing import Any, List, Optional, Tuple

from .agents import REGISTRY
from .exceptions import DuplicateNameError, LockHeldError, NotFoundError, PersistenceError
from .logging_config import get_logger
from .models import Group, Instance, Project, Settings, new_group_id, new_project_id
from .pid_utils import acquire_lock, release_lock
from .settings import DEFAULT_PROJECT_ID, get_config_root

logger = get_logger("storage")

PROJECTS_FILE = "projects.json"
SESSIONS_FILE = "sessions.json"
GROUPS_FILE = "groups.json"
SETTINGS_FILE = "settings.json"
LOCK_FILE = "project.lock"


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON via temp file + fsync + rename.

    Raises:
        PersistenceError: If any step fails; the target is left untouched
    """
    tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as e:
        try:
            tmp_path.unlink()
        except OSError:
            pass
        raise PersistenceError(path, str(e)) from e

    # Make the rename itself durable
    try:
        dir_fd = os.open(path.parent, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


def read_json(path: Path, default: Any) -> Any:
    """Read JSON, returning default when the file is missing or unreadable."""
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return default
    except (OSError, ValueError) as e:
        logger.error("Ignoring unreadable %s: %s", path, e)
        return default


def normalize_instances(instances: List[Instance]) -> bool:
    """Drop state that must never be persisted.

    - resume tokens on kinds without resume support
    - window 0 (or duplicate indices) in followed windows

    Returns:
        True if anything changed
    """
    changed = False
    for inst in instances:
        if inst.resume_session_id and not REGISTRY[inst.agent].supports_resume:
            inst.resume_session_id = ""
            changed = True
        seen = set()
        kept = []
        for fw in inst.followed_windows:
            if fw.index <= 0 or fw.index in seen:
                changed = True
                continue
            seen.add(fw.index)
            if fw.resume_session_id and not REGISTRY[fw.agent].supports_resume:
                fw.resume_session_id = ""
                changed = True
            kept.append(fw)
        inst.followed_windows = kept
    return changed


class Storage:
    """On-disk store for projects, groups, instances and settings."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else get_config_root()

    # -- paths ---------------------------------------------------------

    def project_dir(self, project_id: Optional[str]) -> Path:
        return self.root / (project_id or DEFAULT_PROJECT_ID)

    def lock_path(self, project_id: Optional[str]) -> Path:
        return self.project_dir(project_id) / LOCK_FILE

    # -- project catalog -----------------------------------------------

    def load_projects(self) -> Tuple[Optional[str], List[Project]]:
        """Return (active project id, projects)."""
        data = read_json(self.root / PROJECTS_FILE, {})
        if not isinstance(data, dict):
            return None, []
        projects = [
            Project.from_dict(p) for p in data.get("projects") or [] if isinstance(p, dict)
        ]
        return data.get("activeId") or None, projects

    def save_projects(self, active_id: Optional[str], projects: List[Project]) -> None:
        write_json_atomic(self.root / PROJECTS_FILE, {
            "activeId": active_id or None,
            "projects": [p.to_dict() for p in projects],
        })

    def get_project(self, project_id: str) -> Project:
        _, projects = self.load_projects()
        for project in projects:
            if project.id == project_id:
                return project
        raise NotFoundError("project", project_id)

    def set_active_project(self, project_id: Optional[str]) -> None:
        _, projects = self.load_projects()
        if project_id and not any(p.id == project_id for p in projects):
            raise NotFoundError("project", project_id)
        self.save_projects(project_id, projects)

    def add_project(self, name: str) -> Project:
        """Create a project.

        Raises:
            DuplicateNameError: If a project with this name exists
        """
        name = name.strip()
        active_id, projects = self.load_projects()
        if any(p.name == name for p in projects):
            raise DuplicateNameError("project", name)
        project = Project(id=new_project_id(name), name=name)
        self.project_dir(project.id).mkdir(parents=True, exist_ok=True)
        projects.append(project)
        self.save_projects(active_id, projects)
        logger.info("Added project %s (%s)", name, project.id)
        return project

    def remove_project(self, project_id: str) -> None:
        """Delete a project and its directory.

        Callers check for running instances first.
        """
        active_id, projects = self.load_projects()
        remaining = [p for p in projects if p.id != project_id]
        if len(remaining) == len(projects):
            raise NotFoundError("project", project_id)
        if active_id == project_id:
            active_id = None
        self.save_projects(active_id, remaining)
        shutil.rmtree(self.project_dir(project_id), ignore_errors=True)
        logger.info("Removed project %s", project_id)

    def rename_project(self, project_id: str, name: str) -> None:
        name = name.strip()
        active_id, projects = self.load_projects()
        target = None
        for project in projects:
            if project.id == project_id:
                target = project
            elif project.name == name:
                raise DuplicateNameError("project", name)
        if target is None:
            raise NotFoundError("project", project_id)
        target.name = name
        self.save_projects(active_id, projects)

    def project_session_count(self, project_id: Optional[str]) -> int:
        data = read_json(self.project_dir(project_id) / SESSIONS_FILE, [])
        return len(data) if isinstance(data, list) else 0

    # -- per-project state ---------------------------------------------

    def load_all(self, project_id: Optional[str]) -> Tuple[List[Instance], List[Group], Settings]:
        """Load instances, groups and settings for a project.

        Missing files read as empty. The normalization pass runs on every
        load and is written back when it changed anything.
        """
        base = self.project_dir(project_id)
        raw_sessions = read_json(base / SESSIONS_FILE, [])
        raw_groups = read_json(base / GROUPS_FILE, [])
        raw_settings = read_json(base / SETTINGS_FILE, {})

        instances = [
            Instance.from_dict(d) for d in raw_sessions
            if isinstance(d, dict) and d.get("id")
        ] if isinstance(raw_sessions, list) else []
        groups = [
            Group.from_dict(d) for d in raw_groups
            if isinstance(d, dict) and d.get("id")
        ] if isinstance(raw_groups, list) else []
        settings = Settings.from_dict(raw_settings) if isinstance(raw_settings, dict) else Settings()

        if normalize_instances(instances):
            logger.info("Normalized stored sessions for %s", project_id or DEFAULT_PROJECT_ID)
            try:
                self.save_instances(project_id, instances)
            except PersistenceError as e:
                logger.warning("Could not write normalized sessions: %s", e)
        return instances, groups, settings

    def save_instances(self, project_id: Optional[str], instances: List[Instance]) -> None:
        normalize_instances(instances)
        write_json_atomic(
            self.project_dir(project_id) / SESSIONS_FILE,
            [inst.to_dict() for inst in instances],
        )

    def save_groups(self, project_id: Optional[str], groups: List[Group]) -> None:
        write_json_atomic(
            self.project_dir(project_id) / GROUPS_FILE,
            [g.to_dict() for g in groups],
        )

    def save(self, project_id: Optional[str], instances: List[Instance], groups: List[Group]) -> None:
        """Persist instances and groups (two atomic file swaps)."""
        self.save_instances(project_id, instances)
        self.save_groups(project_id, groups)

    def save_settings(self, project_id: Optional[str], settings: Settings) -> None:
        write_json_atomic(self.project_dir(project_id) / SETTINGS_FILE, settings.to_dict())

    def import_default_into(self, project_id: str) -> int:
        """Move every session out of the default namespace into a project.

        Groups are merged by name: a default group whose name already exists
        in the project is dropped and its members are re-pointed at the
        project's group. The default namespace is cleared afterwards.

        Returns:
            Number of sessions moved
        """
        self.get_project(project_id)
        default_instances, default_groups, _ = self.load_all(None)
        if not default_instances:
            return 0

        instances, groups, _ = self.load_all(project_id)
        by_name = {g.name: g for g in groups}
        for group in default_groups:
            existing = by_name.get(group.name)
            if existing is None:
                groups.append(group)
                by_name[group.name] = group
                continue
            for inst in default_instances:
                if inst.group_id == group.id:
                    inst.group_id = existing.id

        known_ids = {inst.id for inst in instances}
        instances.extend(inst for inst in default_instances if inst.id not in known_ids)
        self.save(project_id, instances, groups)
        self.save(None, [], [])
        self.save_settings(None, Settings())
        logger.info("Imported %d default sessions into %s", len(default_instances), project_id)
        return len(default_instances)

    def find_instance_by_session(self, session_name: str) -> Optional[Tuple[Optional[str], Instance]]:
        """Search the default namespace, then every project, for a tmux session.

        Returns:
            (project id, instance) or None. The default namespace is None.
        """
        _, projects = self.load_projects()
        for project_id in [None] + [p.id for p in projects]:
            instances, _, _ = self.load_all(project_id)
            for inst in instances:
                if inst.session_name == session_name:
                    return project_id, inst
        return None

    # -- mutator helpers keyed by id -----------------------------------

    def update_instance(self, project_id: Optional[str], instance: Instance) -> None:
        instances, groups, _ = self.load_all(project_id)
        for i, existing in enumerate(instances):
            if existing.id == instance.id:
                instances[i] = instance
                self.save_instances(project_id, instances)
                return
        raise NotFoundError("instance", instance.id)

    def add_group(self, project_id: Optional[str], name: str) -> Group:
        name = name.strip()
        _, groups, _ = self.load_all(project_id)
        if any(g.name == name for g in groups):
            raise DuplicateNameError("group", name)
        group = Group(id=new_group_id(), name=name)
        groups.append(group)
        self.save_groups(project_id, groups)
        return group

    def remove_group(self, project_id: Optional[str], group_id: str) -> None:
        """Remove a group; its members become ungrouped."""
        instances, groups, _ = self.load_all(project_id)
        remaining = [g for g in groups if g.id != group_id]
        if len(remaining) == len(groups):
            raise NotFoundError("group", group_id)
        for inst in instances:
            if inst.group_id == group_id:
                inst.group_id = ""
        self.save(project_id, instances, remaining)

    def rename_group(self, project_id: Optional[str], group_id: str, name: str) -> None:
        _, groups, _ = self.load_all(project_id)
        self._find_group(groups, group_id).name = name.strip()
        self.save_groups(project_id, groups)

    def toggle_group_collapsed(self, project_id: Optional[str], group_id: str) -> bool:
        _, groups, _ = self.load_all(project_id)
        group = self._find_group(groups, group_id)
        group.collapsed = not group.collapsed
        self.save_groups(project_id, groups)
        return group.collapsed

    def set_instance_group(self, project_id: Optional[str], instance_id: str, group_id: str) -> None:
        instances, groups, _ = self.load_all(project_id)
        if group_id:
            self._find_group(groups, group_id)
        for inst in instances:
            if inst.id == instance_id:
                inst.group_id = group_id
                self.save_instances(project_id, instances)
                return
        raise NotFoundError("instance", instance_id)

    @staticmethod
    def _find_group(groups: List[Group], group_id: str) -> Group:
        for group in groups:
            if group.id == group_id:
                return group
        raise NotFoundError("group", group_id)

    # -- locking -------------------------------------------------------

    def lock_project(self, project_id: Optional[str]) -> None:
        """Take the project's advisory lock.

        Raises:
            LockHeldError: If a live process already holds it
        """
        acquired, holder = acquire_lock(self.lock_path(project_id))
        if not acquired:
            raise LockHeldError(project_id or DEFAULT_PROJECT_ID, holder or 0)
        logger.debug("Locked project %s", project_id or DEFAULT_PROJECT_ID)

    def unlock_project(self, project_id: Optional[str]) -> None:
        release_lock(self.lock_path(project_id))
        logger.debug("Unlocked project %s", project_id or DEFAULT_PROJECT_ID)
