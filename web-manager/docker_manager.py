#!/usr/bin/env python3
"""
Docker operations for DockLite
Talks to the Docker Engine through the docker CLI with argument lists only
"""

import json
import logging
import re
import subprocess

from config import Config

logger = logging.getLogger(__name__)

CONTAINER_REF_PATTERN = re.compile(r'^[a-zA-Z0-9][a-zA-Z0-9_.-]*$')


class DockerError(Exception):
    """A docker command failed"""

    def __init__(self, message, returncode=None):
        super().__init__(message)
        self.message = message
        self.returncode = returncode


class DockerManager:
    """Docker operations with input validation"""

    @staticmethod
    def run_command(args, timeout=None):
        """Execute a docker command, never through a shell"""
        cmd = [Config.DOCKER_BINARY] + list(args)
        timeout = timeout or Config.DOCKER_TIMEOUT
        try:
            logger.info(f"Executing command: {' '.join(cmd)[:100]}...")
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
            return {
                'success': result.returncode == 0,
                'stdout': result.stdout.strip(),
                'stderr': result.stderr.strip(),
                'returncode': result.returncode
            }
        except subprocess.TimeoutExpired:
            logger.error(f"Command timeout: {' '.join(cmd)[:50]}...")
            return {'success': False, 'stdout': '', 'stderr': 'Command timeout', 'returncode': -1}
        except OSError as e:
            logger.error(f"Command execution error: {str(e)}")
            return {'success': False, 'stdout': '', 'stderr': str(e), 'returncode': -1}

    @staticmethod
    def validate_container_ref(ref):
        """Container ids and names only"""
        return bool(ref) and len(ref) <= 128 and CONTAINER_REF_PATTERN.match(ref) is not None

    @staticmethod
    def _require_ref(ref):
        if not DockerManager.validate_container_ref(ref):
            raise DockerError('Invalid container reference')

    @staticmethod
    def image_exists(image):
        result = DockerManager.run_command(['image', 'inspect', image])
        return result['success']

    @staticmethod
    def pull_image(image):
        """Pull an image unless it is already present"""
        if DockerManager.image_exists(image):
            return
        logger.info(f"Pulling image: {image}")
        result = DockerManager.run_command(['pull', image], timeout=Config.DOCKER_PULL_TIMEOUT)
        if not result['success']:
            logger.error(f"Error pulling image {image}: {result['stderr']}")
            raise DockerError(f"Failed to pull image: {result['stderr']}", result['returncode'])
        logger.info(f"Image pulled: {image}")

    @staticmethod
    def create_container(spec):
        """Create and start a container from a ProvisionSpec, return its id"""
        result = DockerManager.run_command(spec.to_docker_args())
        if not result['success']:
            logger.error(f"Error creating container {spec.container_name}: {result['stderr']}")
            raise DockerError(f"Failed to create container: {result['stderr']}", result['returncode'])

        container_id = result['stdout'].splitlines()[-1].strip() if result['stdout'] else ''
        if not container_id:
            raise DockerError('Failed to create container: docker returned no container id')

        try:
            DockerManager.start_container(container_id)
        except DockerError:
            logger.error(f"Container {spec.container_name} did not start, removing it")
            try:
                DockerManager.remove_container(container_id, force=True)
            except DockerError as e:
                logger.error(f"Error removing container {container_id}: {e.message}")
            raise

        logger.info(f"Container created: {spec.container_name} ({container_id[:12]})")
        return container_id

    @staticmethod
    def start_container(container_id):
        DockerManager._require_ref(container_id)
        result = DockerManager.run_command(['start', container_id])
        if not result['success']:
            raise DockerError(f"Failed to start container: {result['stderr']}", result['returncode'])

    @staticmethod
    def stop_container(container_id):
        DockerManager._require_ref(container_id)
        result = DockerManager.run_command(['stop', container_id])
        # Stopping a stopped container succeeds on the CLI, anything else is an error
        if not result['success']:
            raise DockerError(f"Failed to stop container: {result['stderr']}", result['returncode'])

    @staticmethod
    def restart_container(container_id):
        DockerManager._require_ref(container_id)
        result = DockerManager.run_command(['restart', container_id])
        if not result['success']:
            raise DockerError(f"Failed to restart container: {result['stderr']}", result['returncode'])

    @staticmethod
    def remove_container(container_id, force=False):
        DockerManager._require_ref(container_id)
        args = ['rm', container_id]
        if force:
            args.insert(1, '-f')
        result = DockerManager.run_command(args)
        if not result['success']:
            raise DockerError(f"Failed to remove container: {result['stderr']}", result['returncode'])

    @staticmethod
    def container_action(container_id, action):
        actions = {
            'start': DockerManager.start_container,
            'stop': DockerManager.stop_container,
            'restart': DockerManager.restart_container,
        }
        if action not in actions:
            raise DockerError('Invalid action')
        actions[action](container_id)
        logger.info(f"Container action: {action} on {container_id}")

    @staticmethod
    def inspect_container(container_id):
        """Return the inspect document, or None when the container does not exist"""
        DockerManager._require_ref(container_id)
        result = DockerManager.run_command(['inspect', container_id])
        if not result['success']:
            return None
        try:
            data = json.loads(result['stdout'])
        except json.JSONDecodeError:
            return None
        return data[0] if data else None

    @staticmethod
    def get_container_stats(container_id):
        """One `docker stats` sample, or None when the container is not running"""
        DockerManager._require_ref(container_id)
        result = DockerManager.run_command(['stats', '--no-stream', '--format', '{{json .}}', container_id])
        if not result['success'] or not result['stdout']:
            return None
        try:
            raw = json.loads(result['stdout'].splitlines()[0])
        except json.JSONDecodeError:
            return None
        return {
            'cpu_percent': raw.get('CPUPerc', ''),
            'memory_usage': raw.get('MemUsage', ''),
            'memory_percent': raw.get('MemPerc', ''),
            'network_io': raw.get('NetIO', ''),
            'block_io': raw.get('BlockIO', ''),
            'pids': raw.get('PIDs', ''),
        }

    @staticmethod
    def get_container_logs(container_id, tail=100):
        DockerManager._require_ref(container_id)
        result = DockerManager.run_command(['logs', '--timestamps', '--tail', str(int(tail)), container_id])
        if not result['success']:
            raise DockerError(f"Failed to get container logs: {result['stderr']}", result['returncode'])
        return re.sub(r'[\x00-\x08]', '', result['stdout'])

    @staticmethod
    def list_containers(all_containers=True, managed_only=False):
        """List containers as dicts with id, name, image, state, status, labels"""
        args = ['ps', '--no-trunc', '--format', '{{json .}}']
        if all_containers:
            args.insert(1, '-a')
        if managed_only:
            args[1:1] = ['--filter', 'label=docklite.managed=true']
        result = DockerManager.run_command(args)
        if not result['success']:
            logger.error(f"Error listing containers: {result['stderr']}")
            raise DockerError('Failed to list containers')

        containers = []
        for line in result['stdout'].split('\n'):
            if not line.strip():
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError:
                continue
            containers.append({
                'id': raw.get('ID', ''),
                'name': raw.get('Names', ''),
                'image': raw.get('Image', ''),
                'state': raw.get('State', ''),
                'status': raw.get('Status', ''),
                'ports': raw.get('Ports', '') or '-',
                'labels': parse_label_string(raw.get('Labels', '')),
            })
        return containers

    @staticmethod
    def get_routed_port(labels):
        """Internal port Traefik routes to, from the container labels"""
        for key, value in (labels or {}).items():
            if 'loadbalancer.server.port' in key:
                try:
                    return int(value)
                except (TypeError, ValueError):
                    return None
        return None


def parse_label_string(raw):
    """Parse the comma separated key=value labels of `docker ps --format`"""
    if isinstance(raw, dict):
        return raw
    labels = {}
    for item in (raw or '').split(','):
        if '=' not in item:
            continue
        key, value = item.split('=', 1)
        labels[key.strip()] = value
    return labels
