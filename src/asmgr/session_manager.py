"""
In-memory catalog of a project's instances and groups.

SessionManager owns the lists loaded from Storage and is the only thing
that mutates them. Every mutation is persisted straight away; if the write
fails, the in-memory change is rolled back and the error re-raised.

Display order (what the list UI shows):

    Favorites header   (virtual, only when some instance is a favorite)
      favorites...
    separator
    group header
      members...       (hidden when the group is collapsed)
    ...
    ungrouped instances
"""

import copy
from dataclasses import dataclass
from typing import Callable, List, Optional

from .exceptions import DuplicateNameError, NotFoundError, PersistenceError
from .logging_config import get_logger
from .models import FAVORITES_GROUP_ID, Group, Instance, Settings, new_group_id
from .storage import Storage

logger = get_logger("session_manager")

UP = -1
DOWN = 1


@dataclass
class DisplayItem:
    """One row of the flattened list: a group header, an instance or a separator."""

    group: Optional[Group] = None
    instance: Optional[Instance] = None
    in_favorites: bool = False

    @property
    def is_group(self) -> bool:
        return self.group is not None

    @property
    def is_separator(self) -> bool:
        return self.group is None and self.instance is None


def _direction(direction) -> int:
    if direction in (UP, "up"):
        return UP
    if direction in (DOWN, "down"):
        return DOWN
    raise ValueError(f"direction must be 'up' or 'down', got {direction!r}")


class SessionManager:
    """Catalog operations for one project."""

    def __init__(self, storage: Storage, project_id: Optional[str] = None):
        """Load a project's state.

        Args:
            storage: Persistence store
            project_id: Project to load (None is the default namespace)
        """
        self.storage = storage
        self.project_id = project_id
        self.favorites_collapsed = False
        self.instances: List[Instance] = []
        self.groups: List[Group] = []
        self.settings = Settings()
        self.reload()

    def reload(self) -> None:
        self.instances, self.groups, self.settings = self.storage.load_all(self.project_id)

    # -- persistence ---------------------------------------------------

    def save(self) -> None:
        self.storage.save(self.project_id, self.instances, self.groups)

    def save_settings(self) -> None:
        self.storage.save_settings(self.project_id, self.settings)

    def _commit(self, rollback: Callable[[], None]) -> None:
        """Persist, undoing the in-memory change if the write fails."""
        try:
            self.save()
        except PersistenceError:
            rollback()
            raise

    def _snapshot(self) -> Callable[[], None]:
        instances = list(self.instances)
        groups = copy.deepcopy(self.groups)
        states = {inst.id: copy.copy(inst) for inst in self.instances}
        windows = {inst.id: list(inst.followed_windows) for inst in self.instances}

        def restore() -> None:
            for inst in instances:
                saved = states[inst.id]
                inst.group_id = saved.group_id
                inst.favorite = saved.favorite
                inst.followed_windows = windows[inst.id]
            self.instances = instances
            self.groups = groups

        return restore

    # -- lookups -------------------------------------------------------

    def list_instances(self) -> List[Instance]:
        return list(self.instances)

    def list_groups(self) -> List[Group]:
        return list(self.groups)

    def get_instance(self, instance_id: str) -> Instance:
        for inst in self.instances:
            if inst.id == instance_id:
                return inst
        raise NotFoundError("instance", instance_id)

    def find_instance(self, key: str) -> Optional[Instance]:
        """Look up by id, then by exact name, then by unique id prefix."""
        for inst in self.instances:
            if inst.id == key:
                return inst
        for inst in self.instances:
            if inst.name == key:
                return inst
        matches = [inst for inst in self.instances if inst.id.startswith(key.upper())]
        return matches[0] if len(matches) == 1 else None

    def get_group(self, group_id: str) -> Group:
        for group in self.groups:
            if group.id == group_id:
                return group
        raise NotFoundError("group", group_id)

    def _index_of(self, instance_id: str) -> int:
        for i, inst in enumerate(self.instances):
            if inst.id == instance_id:
                return i
        raise NotFoundError("instance", instance_id)

    # -- display order -------------------------------------------------

    def display_items(self, include_favorites: bool = True, expand_all: bool = False) -> List[DisplayItem]:
        """Flatten favorites, groups and ungrouped instances into rows.

        Args:
            include_favorites: Emit the virtual Favorites section first
            expand_all: Show members of collapsed groups too
        """
        items: List[DisplayItem] = []
        group_ids = {g.id for g in self.groups}

        favorites = [inst for inst in self.instances if inst.favorite]
        if include_favorites and favorites:
            fav_group = Group(id=FAVORITES_GROUP_ID, name="Favorites",
                              collapsed=self.favorites_collapsed)
            items.append(DisplayItem(group=fav_group))
            if expand_all or not self.favorites_collapsed:
                items.extend(DisplayItem(instance=inst, in_favorites=True) for inst in favorites)
            items.append(DisplayItem())

        for group in self.groups:
            items.append(DisplayItem(group=group))
            if group.collapsed and not expand_all:
                continue
            items.extend(
                DisplayItem(instance=inst) for inst in self.instances if inst.group_id == group.id
            )

        # Members of a deleted group show up as ungrouped
        items.extend(
            DisplayItem(instance=inst) for inst in self.instances
            if not inst.group_id or inst.group_id not in group_ids
        )
        return items

    def display_order(self) -> List[Instance]:
        """Instances in list order, each once (favorites not duplicated)."""
        return [
            item.instance for item in self.display_items(include_favorites=False, expand_all=True)
            if item.instance is not None
        ]

    # -- instance catalog ----------------------------------------------

    def add_instance(self, instance: Instance, after_id: Optional[str] = None) -> None:
        """Add an instance, at the end or right after another one."""
        position = len(self.instances)
        if after_id is not None:
            position = self._index_of(after_id) + 1
        self.instances.insert(position, instance)

        def rollback() -> None:
            self.instances = [i for i in self.instances if i is not instance]

        self._commit(rollback)

    def remove_instance(self, instance_id: str) -> Instance:
        index = self._index_of(instance_id)
        removed = self.instances.pop(index)
        if self.settings.marked_session_id == instance_id:
            self.settings.marked_session_id = ""
            try:
                self.save_settings()
            except PersistenceError as e:
                logger.warning("Could not clear marked session: %s", e)

        def rollback() -> None:
            self.instances.insert(index, removed)

        self._commit(rollback)
        return removed

    def update_instance(self, instance: Instance, rollback: Optional[Callable[[], None]] = None) -> None:
        """Persist after an in-place change to an instance."""
        self._index_of(instance.id)
        self._commit(rollback or (lambda: None))

    def toggle_favorite(self, instance_id: str) -> bool:
        inst = self.get_instance(instance_id)
        inst.favorite = not inst.favorite

        def rollback() -> None:
            inst.favorite = not inst.favorite

        self._commit(rollback)
        return inst.favorite

    def reorder_instance(self, instance_id: str, direction) -> bool:
        """Swap an instance with its neighbour in display order.

        Moves never cross a group boundary: when the neighbour is a group
        header (or belongs to another section) nothing happens.

        Returns:
            True if the order changed
        """
        step = _direction(direction)
        items = self.display_items(include_favorites=False, expand_all=True)
        pos = next(
            (i for i, item in enumerate(items)
             if item.instance is not None and item.instance.id == instance_id),
            None,
        )
        if pos is None:
            raise NotFoundError("instance", instance_id)

        neighbour_pos = pos + step
        if neighbour_pos < 0 or neighbour_pos >= len(items):
            return False
        neighbour = items[neighbour_pos]
        if neighbour.instance is None:
            return False

        current = items[pos].instance
        group_ids = {g.id for g in self.groups}

        def section(inst: Instance) -> str:
            return inst.group_id if inst.group_id in group_ids else ""

        if section(current) != section(neighbour.instance):
            return False

        a = self._index_of(current.id)
        b = self._index_of(neighbour.instance.id)
        self.instances[a], self.instances[b] = self.instances[b], self.instances[a]

        def rollback() -> None:
            self.instances[a], self.instances[b] = self.instances[b], self.instances[a]

        self._commit(rollback)
        return True

    # -- groups --------------------------------------------------------

    def add_group(self, name: str) -> Group:
        name = name.strip()
        if not name:
            raise ValueError("group name cannot be empty")
        if any(g.name == name for g in self.groups):
            raise DuplicateNameError("group", name)
        group = Group(id=new_group_id(), name=name)
        self.groups.append(group)
        self._commit(lambda: self.groups.remove(group))
        return group

    def remove_group(self, group_id: str) -> None:
        """Delete a group; its members become ungrouped."""
        self.get_group(group_id)
        rollback = self._snapshot()
        self.groups = [g for g in self.groups if g.id != group_id]
        for inst in self.instances:
            if inst.group_id == group_id:
                inst.group_id = ""
        self._commit(rollback)

    def rename_group(self, group_id: str, name: str) -> None:
        group = self.get_group(group_id)
        name = name.strip()
        if any(g.name == name and g.id != group_id for g in self.groups):
            raise DuplicateNameError("group", name)
        old = group.name
        group.name = name

        def rollback() -> None:
            group.name = old

        self._commit(rollback)

    def set_group_color(self, group_id: str, color: str = "", bg_color: str = "",
                        full_row_color: Optional[bool] = None) -> None:
        group = self.get_group(group_id)
        old = (group.color, group.bg_color, group.full_row_color)
        group.color = color
        group.bg_color = bg_color
        if full_row_color is not None:
            group.full_row_color = full_row_color

        def rollback() -> None:
            group.color, group.bg_color, group.full_row_color = old

        self._commit(rollback)

    def toggle_group_collapsed(self, group_id: str) -> bool:
        if group_id == FAVORITES_GROUP_ID:
            self.favorites_collapsed = not self.favorites_collapsed
            return self.favorites_collapsed
        group = self.get_group(group_id)
        group.collapsed = not group.collapsed

        def rollback() -> None:
            group.collapsed = not group.collapsed

        self._commit(rollback)
        return group.collapsed

    def reorder_group(self, group_id: str, direction) -> bool:
        """Swap a group with the previous/next group.

        Returns:
            True if the order changed
        """
        step = _direction(direction)
        index = next((i for i, g in enumerate(self.groups) if g.id == group_id), None)
        if index is None:
            raise NotFoundError("group", group_id)
        other = index + step
        if other < 0 or other >= len(self.groups):
            return False
        self.groups[index], self.groups[other] = self.groups[other], self.groups[index]

        def rollback() -> None:
            self.groups[index], self.groups[other] = self.groups[other], self.groups[index]

        self._commit(rollback)
        return True

    def assign_to_group(self, instance_id: str, group_id: str) -> None:
        """Move an instance into a group ("" ungroups it)."""
        inst = self.get_instance(instance_id)
        if group_id:
            self.get_group(group_id)
        old = inst.group_id
        inst.group_id = group_id

        def rollback() -> None:
            inst.group_id = old

        self._commit(rollback)

    # -- settings ------------------------------------------------------

    def update_settings(self, **changes) -> Settings:
        """Change UI settings and persist them immediately."""
        for key, value in changes.items():
            if not hasattr(self.settings, key):
                raise AttributeError(f"unknown setting {key!r}")
            setattr(self.settings, key, value)
        self.save_settings()
        return self.settings
