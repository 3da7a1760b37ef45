"""
Container templates for DockLite workloads
Each generator is a pure function returning a ProvisionSpec; the labels it
carries are read back by the panel and by Traefik's Docker provider
"""

import re
import secrets
import string
from typing import Dict, List, Optional

from config import Config

STATIC_IMAGE = 'nginx:alpine'
PHP_IMAGE = 'webdevops/php-nginx:8.2-alpine'
NODE_IMAGE = 'node:20-alpine'
POSTGRES_IMAGE = 'postgres:16-alpine'

TEMPLATE_IMAGES = {
    'static': STATIC_IMAGE,
    'php': PHP_IMAGE,
    'node': NODE_IMAGE,
    'postgres': POSTGRES_IMAGE,
}

SITE_TEMPLATE_TYPES = ('static', 'php', 'node')

DEFAULT_NODE_PORT = 3000
DEFAULT_DB_USERNAME = 'docklite'
RESTART_POLICY = 'unless-stopped'


class ProvisionSpec:
    """Declarative description of a container to create"""

    def __init__(self, image, container_name, env=None, exposed_ports=None, port_bindings=None,
                 binds=None, restart_policy=RESTART_POLICY, labels=None, working_dir=None,
                 command=None, network_mode=None):
        self.image = image
        self.container_name = container_name
        self.working_dir = working_dir
        self.command = command
        self.env: List[str] = env or []
        self.exposed_ports: Dict[str, dict] = exposed_ports or {}
        self.port_bindings: Dict[str, List[Dict[str, str]]] = port_bindings or {}
        self.binds: List[str] = binds or []
        self.restart_policy = restart_policy
        self.network_mode = network_mode
        self.labels: Dict[str, str] = labels or {}

    def to_dict(self):
        """Docker Engine create-container body"""
        host_config = {
            'Binds': list(self.binds),
            'PortBindings': {port: [dict(b) for b in bindings] for port, bindings in self.port_bindings.items()},
            'RestartPolicy': {'Name': self.restart_policy},
        }
        if self.network_mode:
            host_config['NetworkMode'] = self.network_mode

        body = {
            'Image': self.image,
            'name': self.container_name,
            'Env': list(self.env),
            'ExposedPorts': {port: {} for port in self.exposed_ports},
            'HostConfig': host_config,
            'Labels': dict(self.labels),
        }
        if self.working_dir:
            body['WorkingDir'] = self.working_dir
        if self.command:
            body['Cmd'] = list(self.command)
        return body

    def to_docker_args(self):
        """Arguments for `docker create`, in a stable order"""
        args = ['create', '--name', self.container_name]
        if self.working_dir:
            args += ['--workdir', self.working_dir]
        for item in self.env:
            args += ['-e', item]
        for port in self.exposed_ports:
            args += ['--expose', port]
        for port, bindings in self.port_bindings.items():
            for binding in bindings:
                host_port = binding.get('HostPort') or '0'
                if host_port == '0':
                    # Docker picks a free host port
                    args += ['-p', port]
                else:
                    args += ['-p', f'{host_port}:{port}']
        for bind in self.binds:
            args += ['-v', bind]
        if self.restart_policy:
            args += ['--restart', self.restart_policy]
        if self.network_mode:
            args += ['--network', self.network_mode]
        for key, value in self.labels.items():
            args += ['--label', f'{key}={value}']
        args.append(self.image)
        if self.command:
            args += list(self.command)
        return args


def sanitize_token(value):
    """Replace every non-alphanumeric character with a dash"""
    return re.sub(r'[^a-zA-Z0-9]', '-', value)


def traefik_labels(domain, internal_port):
    token = sanitize_token(domain)
    router = f'traefik.http.routers.docklite-{token}'
    return {
        'traefik.enable': 'true',
        f'{router}.rule': f'Host(`{domain}`)',
        f'{router}.entrypoints': 'websecure',
        f'{router}.tls': 'true',
        f'{router}.tls.certresolver': 'letsencrypt',
        f'traefik.http.services.docklite-{token}.loadbalancer.server.port': str(internal_port),
    }


def _site_labels(template_type, domain, site_id, user_id, folder_id, internal_port):
    labels = {
        'docklite.managed': 'true',
        'docklite.site.id': str(site_id),
        'docklite.domain': domain,
        'docklite.type': template_type,
        'docklite.user.id': str(user_id),
        'docklite.folder.id': str(folder_id) if folder_id is not None else '',
    }
    labels.update(traefik_labels(domain, internal_port))
    return labels


def _site_container_name(site_id, domain):
    return f'docklite-site{site_id}-{sanitize_token(domain)}'


def generate_static_template(domain, code_path, site_id, user_id, folder_id=None):
    return ProvisionSpec(
        image=STATIC_IMAGE,
        container_name=_site_container_name(site_id, domain),
        exposed_ports={'80/tcp': {}},
        port_bindings={'80/tcp': [{'HostPort': '0'}]},
        binds=[f'{code_path}:/usr/share/nginx/html:ro'],
        network_mode=Config.TRAEFIK_NETWORK,
        labels=_site_labels('static', domain, site_id, user_id, folder_id, 80),
    )


def generate_php_template(domain, code_path, site_id, user_id, folder_id=None):
    return ProvisionSpec(
        image=PHP_IMAGE,
        container_name=_site_container_name(site_id, domain),
        env=[
            'WEB_DOCUMENT_ROOT=/app',
            'PHP_DISPLAY_ERRORS=1',
            'PHP_MEMORY_LIMIT=256M',
            'PHP_MAX_EXECUTION_TIME=300',
            'PHP_POST_MAX_SIZE=50M',
            'PHP_UPLOAD_MAX_FILESIZE=50M',
        ],
        exposed_ports={'80/tcp': {}},
        port_bindings={'80/tcp': [{'HostPort': '0'}]},
        binds=[f'{code_path}:/app:rw'],
        network_mode=Config.TRAEFIK_NETWORK,
        labels=_site_labels('php', domain, site_id, user_id, folder_id, 80),
    )


def generate_node_template(domain, code_path, site_id, user_id, folder_id=None, port=None):
    internal_port = port or DEFAULT_NODE_PORT
    return ProvisionSpec(
        image=NODE_IMAGE,
        container_name=_site_container_name(site_id, domain),
        working_dir='/app',
        command=['npm', 'start'],
        env=[
            'NODE_ENV=production',
            f'PORT={internal_port}',
        ],
        exposed_ports={f'{internal_port}/tcp': {}},
        port_bindings={f'{internal_port}/tcp': [{'HostPort': '0'}]},
        binds=[f'{code_path}:/app:rw'],
        network_mode=Config.TRAEFIK_NETWORK,
        labels=_site_labels('node', domain, site_id, user_id, folder_id, internal_port),
    )


SITE_GENERATORS = {
    'static': generate_static_template,
    'php': generate_php_template,
    'node': generate_node_template,
}


def generate_site_template(template_type, domain, code_path, site_id, user_id, folder_id=None, port=None):
    """Dispatch to the generator for template_type"""
    generator = SITE_GENERATORS.get(template_type)
    if generator is None:
        raise ValueError(f'Invalid template type: {template_type}')
    if template_type == 'node':
        return generator(domain, code_path, site_id, user_id, folder_id=folder_id, port=port)
    return generator(domain, code_path, site_id, user_id, folder_id=folder_id)


def generate_random_password(length=24):
    alphabet = string.ascii_lowercase + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def generate_database_template(name, port, username: Optional[str] = None, password: Optional[str] = None):
    """
    Postgres container for a DockLite database.

    The credentials are also written to the container labels so they can be
    recovered by inspecting the container.
    """
    username = username or DEFAULT_DB_USERNAME
    password = password or generate_random_password()

    return ProvisionSpec(
        image=POSTGRES_IMAGE,
        container_name=f'docklite-db-{sanitize_token(name)}',
        env=[
            f'POSTGRES_DB={name}',
            f'POSTGRES_USER={username}',
            f'POSTGRES_PASSWORD={password}',
        ],
        exposed_ports={'5432/tcp': {}},
        port_bindings={'5432/tcp': [{'HostPort': str(port)}]},
        labels={
            'docklite.managed': 'true',
            'docklite.database': name,
            'docklite.type': 'postgres',
            'docklite.username': username,
            'docklite.password': password,
        },
    )
