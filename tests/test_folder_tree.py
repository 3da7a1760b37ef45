import random

from folder_tree import (
    MAX_FOLDER_DEPTH,
    FolderValidationError,
    build_folder_tree,
    calculate_depth,
    can_nest_folder,
    get_descendant_ids,
    is_descendant,
    subtree_height,
)


def folder(id, parent=None, depth=0, position=0, name=None):
    return {
        'id': id,
        'parent_folder_id': parent,
        'depth': depth,
        'position': position,
        'name': name or f'f{id}',
    }


DEFAULT_AND_WORK = [
    folder(1, None, 0, 0, 'Default'),
    folder(2, 1, 1, 0, 'Work'),
]


def test_move_child_back_to_root_is_valid():
    result = can_nest_folder(2, None, DEFAULT_AND_WORK)
    assert result.valid
    assert result.error is None


def test_nesting_root_under_its_child_is_circular():
    result = can_nest_folder(1, 2, DEFAULT_AND_WORK)
    assert not result.valid
    assert result.kind == FolderValidationError.CIRCULAR_REFERENCE


def test_cannot_nest_into_itself():
    result = can_nest_folder(2, 2, DEFAULT_AND_WORK)
    assert not result.valid
    assert result.kind == FolderValidationError.SELF_PARENT


def test_cannot_nest_below_max_depth():
    folders = [folder(1), folder(2, 1, 1), folder(3)]
    result = can_nest_folder(3, 2, folders)
    assert not result.valid
    assert result.kind == FolderValidationError.DEPTH_EXCEEDED
    assert result.error == f'Maximum nesting depth is {MAX_FOLDER_DEPTH + 1} layers'


def test_folder_with_children_cannot_be_nested():
    folders = [folder(1), folder(2, 1, 1), folder(3)]
    result = can_nest_folder(1, 3, folders)
    assert not result.valid
    assert result.kind == FolderValidationError.DEPTH_EXCEEDED
    assert 'children' in result.error


def test_leaf_can_be_nested_under_root():
    folders = [folder(1), folder(2, position=1)]
    assert can_nest_folder(2, 1, folders).valid


def test_is_descendant_walks_parent_chain():
    folders = [folder(1), folder(2, 1, 1), folder(3, 2, 2)]
    assert is_descendant(3, 1, folders)
    assert is_descendant(3, 3, folders)
    assert not is_descendant(1, 3, folders)


def test_is_descendant_stops_on_cycles():
    folders = [folder(1, 2), folder(2, 1)]
    assert not is_descendant(1, 99, folders)


def test_calculate_depth():
    folders = [folder(1), folder(2, 1, 1)]
    assert calculate_depth(None, folders) == 0
    assert calculate_depth(1, folders) == 1
    assert calculate_depth(2, folders) == 2
    assert calculate_depth(42, folders) == 0


def test_descendants_and_height():
    folders = [folder(1), folder(2, 1, 1), folder(3, 2, 2), folder(4, 1, 1)]
    assert sorted(get_descendant_ids(1, folders)) == [2, 3, 4]
    assert subtree_height(1, folders) == 2
    assert subtree_height(4, folders) == 0


def test_build_tree_sorts_siblings_by_position():
    folders = [
        folder(1, None, 0, 1, 'B'),
        folder(2, None, 0, 0, 'A'),
        folder(3, 1, 1, 1, 'B2'),
        folder(4, 1, 1, 0, 'B1'),
    ]
    tree = build_folder_tree(folders, {4: ['c1', 'c2']})
    assert [n['name'] for n in tree] == ['A', 'B']
    assert [n['name'] for n in tree[1]['children']] == ['B1', 'B2']
    assert tree[1]['children'][0]['containers'] == ['c1', 'c2']
    assert tree[0]['containers'] == []


def test_build_tree_dangling_parent_becomes_root():
    tree = build_folder_tree([folder(1), folder(2, 99, 1, 1)])
    assert sorted(n['id'] for n in tree) == [1, 2]


def test_build_tree_does_not_mutate_input():
    folders = [folder(1), folder(2, 1, 1)]
    build_folder_tree(folders)
    assert 'children' not in folders[0]


def test_build_tree_empty():
    assert build_folder_tree([]) == []


def _random_forest(rng, size):
    folders = []
    for i in range(1, size + 1):
        roots = [f for f in folders if f['depth'] == 0]
        if roots and rng.random() < 0.5:
            parent = rng.choice(roots)
            folders.append(folder(i, parent['id'], 1, rng.randint(0, 5)))
        else:
            folders.append(folder(i, None, 0, rng.randint(0, 5)))
    return folders


def _apply_move(folders, folder_id, new_parent_id):
    moved = [dict(f) for f in folders]
    by_id = {f['id']: f for f in moved}
    target = by_id[folder_id]
    target['parent_folder_id'] = new_parent_id
    delta = calculate_depth(new_parent_id, folders) - target['depth']
    for descendant_id in [folder_id] + get_descendant_ids(folder_id, folders):
        by_id[descendant_id]['depth'] += delta
    return moved


def _count_nodes(nodes):
    return sum(1 + _count_nodes(n['children']) for n in nodes)


def test_accepted_moves_keep_forest_acyclic_and_shallow():
    rng = random.Random(1234)
    for _ in range(200):
        folders = _random_forest(rng, rng.randint(1, 8))
        folder_id = rng.choice(folders)['id']
        new_parent_id = rng.choice([None] + [f['id'] for f in folders])

        if not can_nest_folder(folder_id, new_parent_id, folders).valid:
            continue

        moved = _apply_move(folders, folder_id, new_parent_id)
        assert max(f['depth'] for f in moved) <= MAX_FOLDER_DEPTH
        for f in moved:
            # A cycle would put a folder on its own parent chain
            if f['parent_folder_id'] is not None:
                assert not is_descendant(f['parent_folder_id'], f['id'], moved)
        assert _count_nodes(build_folder_tree(moved)) == len(moved)
