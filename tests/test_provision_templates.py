import pytest

from config import Config
from provision_templates import (
    NODE_IMAGE,
    POSTGRES_IMAGE,
    STATIC_IMAGE,
    generate_database_template,
    generate_node_template,
    generate_php_template,
    generate_random_password,
    generate_site_template,
    generate_static_template,
    sanitize_token,
    traefik_labels,
)


def test_node_template_routes_domain_to_default_port():
    spec = generate_node_template('a.io', '/x', 7, 3)
    assert spec.labels['traefik.http.routers.docklite-a-io.rule'] == 'Host(`a.io`)'
    assert spec.labels['traefik.http.services.docklite-a-io.loadbalancer.server.port'] == '3000'
    assert spec.image == NODE_IMAGE
    assert spec.working_dir == '/app'
    assert spec.command == ['npm', 'start']
    assert 'PORT=3000' in spec.env
    assert spec.binds == ['/x:/app:rw']
    assert spec.network_mode == Config.TRAEFIK_NETWORK


def test_node_template_custom_port():
    spec = generate_node_template('a.io', '/x', 7, 3, port=8080)
    assert '8080/tcp' in spec.exposed_ports
    assert spec.labels['traefik.http.services.docklite-a-io.loadbalancer.server.port'] == '8080'


def test_site_labels_carry_context():
    spec = generate_node_template('a.io', '/x', 7, 3, folder_id=5)
    assert spec.labels['docklite.managed'] == 'true'
    assert spec.labels['docklite.type'] == 'node'
    assert spec.labels['docklite.domain'] == 'a.io'
    assert spec.labels['docklite.site.id'] == '7'
    assert spec.labels['docklite.user.id'] == '3'
    assert spec.labels['docklite.folder.id'] == '5'


def test_static_template_mounts_read_only():
    spec = generate_static_template('my.site.com', '/srv/sites/alice/my.site.com', 1, 2)
    assert spec.image == STATIC_IMAGE
    assert spec.binds == ['/srv/sites/alice/my.site.com:/usr/share/nginx/html:ro']
    assert spec.port_bindings == {'80/tcp': [{'HostPort': '0'}]}
    assert spec.labels['docklite.type'] == 'static'
    assert spec.labels['docklite.folder.id'] == ''
    assert spec.container_name == 'docklite-site1-my-site-com'


def test_php_template():
    spec = generate_php_template('p.dev', '/code', 4, 2)
    assert spec.binds == ['/code:/app:rw']
    assert 'WEB_DOCUMENT_ROOT=/app' in spec.env
    assert spec.labels['docklite.type'] == 'php'


def test_generators_are_deterministic():
    assert generate_php_template('p.dev', '/code', 4, 2).to_dict() == \
        generate_php_template('p.dev', '/code', 4, 2).to_dict()


def test_traefik_labels_exact_keys():
    labels = traefik_labels('x.org', 80)
    assert labels == {
        'traefik.enable': 'true',
        'traefik.http.routers.docklite-x-org.rule': 'Host(`x.org`)',
        'traefik.http.routers.docklite-x-org.entrypoints': 'websecure',
        'traefik.http.routers.docklite-x-org.tls': 'true',
        'traefik.http.routers.docklite-x-org.tls.certresolver': 'letsencrypt',
        'traefik.http.services.docklite-x-org.loadbalancer.server.port': '80',
    }


def test_sanitize_token():
    assert sanitize_token('a.b_c-d') == 'a-b-c-d'


def test_generate_site_template_rejects_unknown_type():
    with pytest.raises(ValueError):
        generate_site_template('ruby', 'a.io', '/x', 1, 1)


def test_database_template():
    spec = generate_database_template('shop_db', 5433, username='shop', password='pw')
    assert spec.image == POSTGRES_IMAGE
    assert spec.container_name == 'docklite-db-shop-db'
    assert spec.port_bindings == {'5432/tcp': [{'HostPort': '5433'}]}
    assert 'POSTGRES_DB=shop_db' in spec.env
    assert 'POSTGRES_USER=shop' in spec.env
    assert 'POSTGRES_PASSWORD=pw' in spec.env
    assert spec.labels == {
        'docklite.managed': 'true',
        'docklite.database': 'shop_db',
        'docklite.type': 'postgres',
        'docklite.username': 'shop',
        'docklite.password': 'pw',
    }


def test_database_template_generates_credentials():
    spec = generate_database_template('db1', 5432)
    assert spec.labels['docklite.username'] == 'docklite'
    assert len(spec.labels['docklite.password']) == 24


def test_random_password_alphabet():
    password = generate_random_password(40)
    assert len(password) == 40
    assert password.isalnum() and password == password.lower()


def test_docker_args():
    spec = generate_node_template('a.io', '/x', 7, 3)
    args = spec.to_docker_args()
    assert args[:3] == ['create', '--name', 'docklite-site7-a-io']
    assert args[args.index('--workdir') + 1] == '/app'
    assert ['-p', '3000/tcp'] == args[args.index('-p'):args.index('-p') + 2]
    assert '--label' in args
    assert 'traefik.http.routers.docklite-a-io.rule=Host(`a.io`)' in args
    assert args[-3:] == [NODE_IMAGE, 'npm', 'start']


def test_docker_args_fixed_host_port():
    args = generate_database_template('db1', 5440, password='pw').to_docker_args()
    assert '5440:5432/tcp' in args
    assert args[-1] == POSTGRES_IMAGE
    assert '--network' not in args


def test_engine_body():
    body = generate_static_template('s.io', '/code', 1, 1).to_dict()
    assert body['Image'] == STATIC_IMAGE
    assert body['ExposedPorts'] == {'80/tcp': {}}
    assert body['HostConfig']['RestartPolicy'] == {'Name': 'unless-stopped'}
    assert body['HostConfig']['NetworkMode'] == Config.TRAEFIK_NETWORK
