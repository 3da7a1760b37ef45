"""
Folder hierarchy helpers
Folders are stored flat (id, parent_folder_id, depth, position); the tree is
rebuilt from that list on every read
"""

from collections import namedtuple

from config import Config

# Maximum nesting depth (0 = root, 1 = one level of nesting)
MAX_FOLDER_DEPTH = Config.MAX_FOLDER_DEPTH

NestValidation = namedtuple('NestValidation', ['valid', 'error', 'kind'], defaults=(None, None))

VALID_NESTING = NestValidation(True)


class FolderValidationError:
    """Reasons a re-parenting request is refused"""

    SELF_PARENT = 'self_parent'
    CIRCULAR_REFERENCE = 'circular_reference'
    DEPTH_EXCEEDED = 'depth_exceeded'


def _index_by_id(folders):
    return {folder['id']: folder for folder in folders}


def build_folder_tree(folders, containers_by_folder_id=None):
    """
    Build a list of root nodes from a flat folder list.

    Each node is a copy of the folder dict with 'children' and 'containers'
    keys. A folder whose parent is missing from the list is treated as a
    root. Siblings are sorted by position, ties keep input order.
    """
    containers_by_folder_id = containers_by_folder_id or {}
    nodes = {}
    for folder in folders:
        node = dict(folder)
        node['children'] = []
        node['containers'] = list(containers_by_folder_id.get(folder['id'], []))
        nodes[folder['id']] = node

    roots = []
    for folder in folders:
        node = nodes[folder['id']]
        parent_id = folder.get('parent_folder_id')
        if parent_id is None:
            roots.append(node)
            continue
        parent = nodes.get(parent_id)
        if parent is not None and parent is not node:
            parent['children'].append(node)
        else:
            roots.append(node)

    def sort_by_position(level):
        level.sort(key=lambda n: n.get('position') or 0)
        for child in level:
            sort_by_position(child['children'])

    sort_by_position(roots)
    return roots


def is_descendant(folder_id, potential_ancestor_id, all_folders):
    """
    True if potential_ancestor_id appears on the parent chain of folder_id
    (folder_id itself included)
    """
    folder_map = _index_by_id(all_folders)
    seen = set()
    current_id = folder_id

    while current_id is not None and current_id not in seen:
        if current_id == potential_ancestor_id:
            return True
        seen.add(current_id)
        folder = folder_map.get(current_id)
        if folder is None:
            break
        current_id = folder.get('parent_folder_id')

    return False


def calculate_depth(parent_folder_id, all_folders):
    if parent_folder_id is None:
        return 0

    parent = _index_by_id(all_folders).get(parent_folder_id)
    if parent is None:
        return 0

    return (parent.get('depth') or 0) + 1


def get_descendant_ids(folder_id, all_folders):
    """Ids of every folder below folder_id, breadth first"""
    children = {}
    for folder in all_folders:
        children.setdefault(folder.get('parent_folder_id'), []).append(folder['id'])

    result = []
    seen = {folder_id}
    queue = [folder_id]
    while queue:
        current = queue.pop(0)
        for child_id in children.get(current, []):
            if child_id in seen:
                continue
            seen.add(child_id)
            result.append(child_id)
            queue.append(child_id)
    return result


def subtree_height(folder_id, all_folders):
    """Number of levels hanging below folder_id (0 for a leaf)"""
    children = {}
    for folder in all_folders:
        children.setdefault(folder.get('parent_folder_id'), []).append(folder['id'])

    height = 0
    seen = {folder_id}
    level = [folder_id]
    while True:
        next_level = []
        for current in level:
            for child_id in children.get(current, []):
                if child_id not in seen:
                    seen.add(child_id)
                    next_level.append(child_id)
        if not next_level:
            return height
        height += 1
        level = next_level


def can_nest_folder(folder_id, new_parent_id, all_folders):
    """Validate moving folder_id under new_parent_id (None means root)"""
    if folder_id == new_parent_id:
        return NestValidation(False, 'Cannot nest a folder into itself',
                              FolderValidationError.SELF_PARENT)

    # The new parent must not sit below the folder being moved
    if new_parent_id is not None and is_descendant(new_parent_id, folder_id, all_folders):
        return NestValidation(False, 'Cannot create circular folder reference',
                              FolderValidationError.CIRCULAR_REFERENCE)

    new_depth = calculate_depth(new_parent_id, all_folders)
    if new_depth > MAX_FOLDER_DEPTH:
        return NestValidation(False, f'Maximum nesting depth is {MAX_FOLDER_DEPTH + 1} layers',
                              FolderValidationError.DEPTH_EXCEEDED)

    if new_depth + subtree_height(folder_id, all_folders) > MAX_FOLDER_DEPTH:
        return NestValidation(False, 'Moving this folder would exceed maximum nesting depth for its children',
                              FolderValidationError.DEPTH_EXCEEDED)

    return VALID_NESTING
