import time

import pytest

from app import create_app
from config import Config
from docker_manager import DockerError, DockerManager
from models import db, User


class FakeDocker:
    """In-memory stand-in for the docker CLI calls the panel makes"""

    def __init__(self):
        self.created = []
        self.removed = []
        self.actions = []
        self.pulled = []
        self.fail_create = False
        self.live = {}
        self.stopped = set()
        self._counter = 0

    def pull_image(self, image):
        self.pulled.append(image)

    def create_container(self, spec):
        if self.fail_create:
            raise DockerError('Failed to create container: boom', 1)
        self._counter += 1
        container_id = f'{self._counter:064x}'
        self.created.append(spec)
        self.live[container_id] = spec
        return container_id

    def remove_container(self, container_id, force=False):
        self.removed.append(container_id)
        self.live.pop(container_id, None)

    def container_action(self, container_id, action):
        self.actions.append((container_id, action))

    def get_container_logs(self, container_id, tail=100):
        return f'logs for {container_id} ({tail})'

    def inspect_container(self, container_id):
        spec = self.live.get(container_id)
        if spec is None:
            return None
        return {
            'Id': container_id,
            'Name': '/' + spec.container_name,
            'Created': '2024-01-01T00:00:00Z',
            'State': {'Status': 'running', 'Running': True},
            'Config': {'Image': spec.image, 'Labels': dict(spec.labels)},
            'HostConfig': {'RestartPolicy': {'Name': 'unless-stopped'}},
            'Mounts': [],
            'NetworkSettings': {'Networks': {}, 'Ports': {}},
        }

    def get_container_stats(self, container_id):
        if container_id not in self.live or container_id in self.stopped:
            return None
        return {'cpu_percent': '0.10%', 'memory_usage': '5MiB / 1GiB', 'memory_percent': '0.50%',
                'network_io': '0B / 0B', 'block_io': '0B / 0B', 'pids': '2'}

    def list_containers(self, all_containers=True, managed_only=False):
        return [
            {
                'id': container_id,
                'name': spec.container_name,
                'image': spec.image,
                'state': 'running',
                'status': 'Up',
                'ports': '-',
                'labels': dict(spec.labels),
            }
            for container_id, spec in self.live.items()
        ]


@pytest.fixture
def base_dir(tmp_path, monkeypatch):
    sites = tmp_path / 'sites'
    sites.mkdir()
    monkeypatch.setenv('DOCKLITE_DATA_DIR', str(sites))
    monkeypatch.setattr(Config, 'LEGACY_BASE_DIR', str(tmp_path / 'legacy-missing'))
    return sites


@pytest.fixture
def fake_docker(monkeypatch):
    fake = FakeDocker()
    for name in ('pull_image', 'create_container', 'remove_container', 'container_action',
                 'get_container_logs', 'list_containers', 'inspect_container', 'get_container_stats'):
        monkeypatch.setattr(DockerManager, name, staticmethod(getattr(fake, name)))
    return fake


@pytest.fixture
def app(base_dir, fake_docker):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make_user(username, is_admin=False, password='secret-password'):
        user = User(username=username, is_admin=is_admin, is_active=True)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return _make_user


@pytest.fixture
def login(client):
    def _login(user):
        with client.session_transaction() as sess:
            sess['logged_in'] = True
            sess['user_id'] = user.id
            sess['username'] = user.username
            sess['is_admin'] = user.is_admin
            sess['last_activity'] = time.time()
        return client
    return _login
