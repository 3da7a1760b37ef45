import io
import os

import pytest

from models import AuditLog, Site


@pytest.fixture
def alice(make_user):
    return make_user('alice')


@pytest.fixture
def admin(make_user):
    return make_user('root', is_admin=True)


def test_login_and_logout(client, make_user):
    make_user('alice', password='pw-123456')
    response = client.post('/api/auth/login', json={'username': 'alice', 'password': 'pw-123456'})
    assert response.status_code == 200
    assert response.get_json()['user']['username'] == 'alice'
    assert client.get('/api/auth/me').status_code == 200

    assert client.post('/api/auth/logout').status_code == 200
    assert client.get('/api/auth/me').status_code == 401


def test_login_bad_password_is_audited(client, make_user):
    make_user('alice', password='pw-123456')
    response = client.post('/api/auth/login', json={'username': 'alice', 'password': 'nope'})
    assert response.status_code == 401
    assert AuditLog.query.filter_by(event_type='login_attempt', status='failed').count() == 1


def test_api_requires_login(client):
    response = client.get('/api/folders')
    assert response.status_code == 401
    assert response.get_json()['success'] is False


def test_security_headers(client):
    response = client.get('/api/health')
    assert response.headers['X-Content-Type-Options'] == 'nosniff'
    assert response.headers['X-Frame-Options'] == 'DENY'


def test_folder_crud(login, alice):
    client = login(alice)
    response = client.post('/api/folders', json={'name': 'Work'})
    assert response.status_code == 201
    work_id = response.get_json()['folder']['id']

    response = client.post('/api/folders', json={'name': 'Clients', 'parentId': work_id})
    assert response.status_code == 201
    clients_id = response.get_json()['folder']['id']

    tree = client.get('/api/folders').get_json()['folders']
    work = next(node for node in tree if node['id'] == work_id)
    assert [child['id'] for child in work['children']] == [clients_id]

    response = client.put(f'/api/folders/{work_id}/move', json={'newParentId': clients_id})
    assert response.status_code == 400
    assert 'circular' in response.get_json()['error']

    assert client.put(f'/api/folders/{clients_id}/move', json={'newParentId': None}).status_code == 200
    assert client.delete(f'/api/folders/{work_id}').status_code == 200


def test_folder_of_other_user_is_forbidden(login, alice, make_user):
    bob = make_user('bob')
    client = login(bob)
    folder_id = client.post('/api/folders', json={'name': 'Mine'}).get_json()['folder']['id']

    client = login(alice)
    assert client.put(f'/api/folders/{folder_id}', json={'name': 'Stolen'}).status_code == 403
    assert client.delete(f'/api/folders/{folder_id}').status_code == 403


def test_folder_containers(login, alice):
    client = login(alice)
    folder_id = client.post('/api/folders', json={'name': 'Work'}).get_json()['folder']['id']
    for container_id in ('c1', 'c2'):
        response = client.post(f'/api/folders/{folder_id}/containers', json={'containerId': container_id})
        assert response.status_code == 200

    response = client.put(f'/api/folders/{folder_id}/containers/reorder',
                          json={'containerId': 'c2', 'newPosition': 0})
    assert response.status_code == 200
    assert client.get(f'/api/folders/{folder_id}/containers').get_json()['containerIds'] == ['c2', 'c1']

    response = client.delete(f'/api/folders/{folder_id}/containers?containerId=c1')
    assert response.status_code == 200
    assert client.get(f'/api/folders/{folder_id}/containers').get_json()['containerIds'] == ['c2']


def test_site_lifecycle(login, alice, fake_docker):
    client = login(alice)
    response = client.post('/api/sites', json={'domain': 'a.io', 'template_type': 'static'})
    assert response.status_code == 201
    site = response.get_json()['site']
    assert site['container_id'] in fake_docker.live

    sites = client.get('/api/sites').get_json()['sites']
    assert [s['domain'] for s in sites] == ['a.io']

    assert client.delete(f"/api/sites/{site['id']}").status_code == 200
    assert Site.query.count() == 0


def test_site_create_missing_fields(login, alice):
    client = login(alice)
    response = client.post('/api/sites', json={'domain': 'a.io'})
    assert response.status_code == 400


def test_site_create_docker_failure(login, alice, fake_docker):
    fake_docker.fail_create = True
    client = login(alice)
    response = client.post('/api/sites', json={'domain': 'a.io', 'template_type': 'static'})
    assert response.status_code == 500
    assert response.get_json()['success'] is False


def test_other_users_site_is_hidden(login, alice, make_user):
    bob = make_user('bob')
    site_id = login(bob).post('/api/sites', json={'domain': 'b.io', 'template_type': 'static'}) \
        .get_json()['site']['id']
    client = login(alice)
    assert client.get(f'/api/sites/{site_id}').status_code == 404
    assert client.delete(f'/api/sites/{site_id}').status_code == 404


def test_file_listing_and_editing(login, alice, base_dir):
    (base_dir / 'alice' / 'a.io').mkdir(parents=True)
    client = login(alice)

    response = client.post('/api/files/content', json={'filePath': 'alice/a.io/index.html', 'content': '<h1>hi</h1>'})
    assert response.status_code == 200
    assert (base_dir / 'alice' / 'a.io' / 'index.html').read_text() == '<h1>hi</h1>'

    response = client.get('/api/files/content?path=alice/a.io/index.html')
    assert response.get_json()['content'] == '<h1>hi</h1>'

    files = client.get('/api/files?path=alice/a.io').get_json()['files']
    assert [f['name'] for f in files] == ['index.html']


def test_file_access_outside_own_directory(login, alice, base_dir):
    (base_dir / 'bob').mkdir()
    (base_dir / 'alice').mkdir()
    client = login(alice)
    response = client.get('/api/files?path=bob')
    assert response.status_code == 403
    assert response.get_json()['error'] == 'Forbidden: You can only access your own sites'


def test_file_traversal_is_rejected(login, alice, base_dir):
    (base_dir / 'alice').mkdir()
    client = login(alice)
    assert client.get('/api/files/content?path=../../etc/passwd').status_code == 403
    assert client.get('/api/files/content?path=/etc/passwd').status_code == 400


def test_file_write_through_symlink_is_rejected(login, alice, base_dir, tmp_path):
    (base_dir / 'alice').mkdir()
    target = tmp_path / 'outside.txt'
    target.write_text('original')
    os.symlink(target, base_dir / 'alice' / 'link.txt')

    client = login(alice)
    response = client.post('/api/files/content', json={'filePath': 'alice/link.txt', 'content': 'pwned'})
    assert response.status_code == 403
    assert target.read_text() == 'original'


def test_create_file_and_folder(login, alice, base_dir):
    (base_dir / 'alice').mkdir()
    client = login(alice)
    assert client.post('/api/files/create', json={'basePath': 'alice', 'name': 'docs', 'type': 'folder'}) \
        .status_code == 201
    assert client.post('/api/files/create', json={'basePath': 'alice/docs', 'name': 'a.txt', 'type': 'file'}) \
        .status_code == 201
    assert (base_dir / 'alice' / 'docs' / 'a.txt').is_file()

    response = client.post('/api/files/create', json={'basePath': 'alice', 'name': 'docs', 'type': 'folder'})
    assert response.status_code == 409

    response = client.post('/api/files/create', json={'basePath': 'alice', 'name': '../x', 'type': 'file'})
    assert response.status_code == 400


def test_delete_requires_admin(login, alice, admin, base_dir):
    (base_dir / 'alice').mkdir()
    (base_dir / 'alice' / 'old.txt').write_text('x')

    response = login(alice).delete('/api/files/delete', json={'path': 'alice/old.txt'})
    assert response.status_code == 403

    response = login(admin).delete('/api/files/delete', json={'path': 'alice/old.txt'})
    assert response.status_code == 200
    assert not (base_dir / 'alice' / 'old.txt').exists()


def test_upload_and_download(login, alice, base_dir):
    (base_dir / 'alice').mkdir()
    client = login(alice)
    response = client.post('/api/files/upload', data={
        'path': 'alice',
        'file': (io.BytesIO(b'hello'), 'hello.txt'),
    }, content_type='multipart/form-data')
    assert response.status_code == 201
    assert (base_dir / 'alice' / 'hello.txt').read_bytes() == b'hello'

    response = client.get('/api/files/download?path=alice/hello.txt')
    assert response.status_code == 200
    assert response.data == b'hello'


def test_transfer_copy_picks_unique_name(login, alice, base_dir):
    (base_dir / 'alice' / 'dst').mkdir(parents=True)
    (base_dir / 'alice' / 'a.txt').write_text('1')
    (base_dir / 'alice' / 'dst' / 'a.txt').write_text('2')
    client = login(alice)

    response = client.post('/api/files/transfer', json={
        'sourcePath': 'alice/a.txt', 'targetDir': 'alice/dst', 'action': 'copy',
    })
    assert response.status_code == 200
    assert response.get_json()['name'] == 'a-copy.txt'
    assert (base_dir / 'alice' / 'a.txt').exists()

    response = client.post('/api/files/transfer', json={
        'sourcePath': 'alice/dst', 'targetDir': 'alice/dst', 'action': 'move',
    })
    assert response.status_code == 400


def test_database_routes(login, alice, admin, make_user):
    bob = make_user('bob')
    client = login(alice)
    response = client.post('/api/databases', json={'name': 'shop'})
    assert response.status_code == 201
    body = response.get_json()
    database_id = body['database']['id']
    assert body['connection']['port'] == 5432

    assert login(bob).get(f'/api/databases/{database_id}').status_code == 404

    client = login(admin)
    assert client.post(f'/api/databases/{database_id}/access', json={'user_id': bob.id}).status_code == 200
    assert login(bob).get(f'/api/databases/{database_id}').status_code == 200

    client = login(admin)
    assert client.delete(f'/api/databases/{database_id}/access', json={'user_id': bob.id}).status_code == 200
    assert login(bob).get(f'/api/databases/{database_id}').status_code == 404

    assert login(alice).delete(f'/api/databases/{database_id}').status_code == 403
    assert login(admin).delete(f'/api/databases/{database_id}').status_code == 200


def test_container_list_is_scoped(login, alice, make_user, fake_docker):
    bob = make_user('bob')
    login(alice).post('/api/sites', json={'domain': 'a.io', 'template_type': 'static'})
    login(bob).post('/api/sites', json={'domain': 'b.io', 'template_type': 'node'})

    containers = login(alice).get('/api/containers').get_json()['containers']
    assert [c['labels']['docklite.domain'] for c in containers] == ['a.io']
    assert containers[0]['routed_port'] == 80


def test_container_actions(login, alice, make_user, fake_docker):
    bob = make_user('bob')
    site = login(alice).post('/api/sites', json={'domain': 'a.io', 'template_type': 'static'}) \
        .get_json()['site']
    container_id = site['container_id']

    assert login(alice).post(f'/api/containers/{container_id}/restart').status_code == 200
    assert fake_docker.actions == [(container_id, 'restart')]
    assert login(bob).post(f'/api/containers/{container_id}/stop').status_code == 404
    assert login(alice).post(f'/api/containers/{container_id}/explode').status_code == 400

    response = login(alice).get(f'/api/containers/{container_id}/logs?tail=5')
    assert response.get_json()['logs'] == f'logs for {container_id} (5)'


def test_admin_assign_and_cleanup(login, alice, admin, make_user, fake_docker):
    bob = make_user('bob')
    site = login(alice).post('/api/sites', json={'domain': 'a.io', 'template_type': 'static'}) \
        .get_json()['site']

    response = login(alice).post(f"/api/containers/{site['container_id']}/assign", json={'user_id': bob.id})
    assert response.status_code == 403

    response = login(admin).post(f"/api/containers/{site['container_id']}/assign", json={'user_id': bob.id})
    assert response.status_code == 200
    assert response.get_json()['site']['user_id'] == bob.id

    fake_docker.live.clear()
    response = login(admin).post('/api/db/cleanup')
    assert response.status_code == 200
    assert response.get_json()['removed']['sites'] == 1


def test_container_short_refs(login, alice, fake_docker):
    client = login(alice)
    site = client.post('/api/sites', json={'domain': 'a.io', 'template_type': 'static'}).get_json()['site']
    container_id = site['container_id']

    assert client.post('/api/containers/0/restart').status_code == 404
    assert client.post(f'/api/containers/{container_id[:8]}/restart').status_code == 404
    assert fake_docker.actions == []

    assert client.post(f'/api/containers/{container_id[:12]}/restart').status_code == 200
    assert fake_docker.actions == [(container_id, 'restart')]


def test_container_ambiguous_prefix(login, alice, fake_docker):
    client = login(alice)
    first = client.post('/api/sites', json={'domain': 'a.io', 'template_type': 'static'}).get_json()['site']
    client.post('/api/sites', json={'domain': 'b.io', 'template_type': 'static'})

    # Both fake ids share their leading zeros
    prefix = first['container_id'][:12]
    assert client.post(f'/api/containers/{prefix}/stop').status_code == 404
    assert fake_docker.actions == []


def test_container_inspect_and_stats(login, alice, make_user, fake_docker):
    bob = make_user('bob')
    site = login(alice).post('/api/sites', json={'domain': 'a.io', 'template_type': 'static'}) \
        .get_json()['site']
    container_id = site['container_id']

    response = login(alice).get(f'/api/containers/{container_id}/inspect')
    assert response.status_code == 200
    container = response.get_json()['container']
    assert container['id'] == container_id
    assert container['name'] == f"docklite-site{site['id']}-a-io"
    assert container['labels']['docklite.domain'] == 'a.io'
    assert container['restart_policy'] == {'Name': 'unless-stopped'}

    response = login(alice).get(f'/api/containers/{container_id}/stats')
    assert response.status_code == 200
    assert response.get_json()['stats']['cpu_percent'] == '0.10%'

    fake_docker.stopped.add(container_id)
    assert login(alice).get(f'/api/containers/{container_id}/stats').status_code == 404

    assert login(bob).get(f'/api/containers/{container_id}/inspect').status_code == 404
    assert login(bob).get(f'/api/containers/{container_id}/stats').status_code == 404


def test_admin_inspect_of_missing_container(login, admin):
    assert login(admin).get(f"/api/containers/{'f' * 64}/inspect").status_code == 404
