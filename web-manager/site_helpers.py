"""
On-disk layout for sites: {BASE_DIR}/{username}/{domain}/
"""

import json
import logging
import os

from config import Config
from path_guard import resolve_path, assert_path_within_base

logger = logging.getLogger(__name__)


def get_sites_base_dir():
    """Root new sites are created under (the configured one)"""
    return Config.get_base_dirs()[0]


def get_user_sites_path(username):
    return os.path.join(get_sites_base_dir(), username)


def get_site_path(username, domain):
    return os.path.join(get_sites_base_dir(), username, domain)


def ensure_base_site_directories():
    base_dir = get_sites_base_dir()
    os.makedirs(base_dir, mode=0o755, exist_ok=True)
    try:
        os.chmod(base_dir, 0o755)
    except OSError as e:
        logger.warning(f"Failed to chmod {base_dir}, continuing: {e}")
    logger.info(f"Base site directory ready: {base_dir}")
    return base_dir


def ensure_user_folder(username):
    """Create {BASE_DIR}/{username} if missing and return its real path"""
    user_path = get_user_sites_path(username)
    if not os.path.isdir(user_path):
        os.makedirs(user_path, mode=0o755, exist_ok=True)
        logger.info(f"Created user folder: {user_path}")
    return resolve_path(username, must_exist=True).resolved_path


def ensure_all_user_folders(users):
    """Repair pass: make sure every user has a directory"""
    created = 0
    failed = 0
    for user in users:
        try:
            ensure_user_folder(user.username)
            created += 1
        except Exception as e:
            logger.error(f"Failed to ensure folder for {user.username}: {e}")
            failed += 1
    logger.info(f"User folder check complete: {created} OK, {failed} failed")
    return {'ok': created, 'failed': failed}


def create_site_directory(username, domain):
    """Create the site directory inside the user's jail and return its real path"""
    user_real = ensure_user_folder(username)
    site_path = os.path.join(user_real, domain)
    assert_path_within_base(site_path, user_real)

    try:
        os.makedirs(site_path, mode=0o755, exist_ok=True)
    except OSError as e:
        logger.error(f"Error creating site directory {site_path}: {e}")
        raise

    try:
        os.chmod(site_path, 0o755)
    except OSError as e:
        logger.warning(f"Failed to chmod {site_path}, continuing: {e}")

    resolved = resolve_path(os.path.join(username, domain), must_exist=True)
    logger.info(f"Site directory setup complete: {resolved.resolved_path}")
    return resolved.resolved_path


STATIC_INDEX = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{domain}</title>
    <style>
        body {{ font-family: system-ui, sans-serif; max-width: 800px; margin: 50px auto; padding: 20px; }}
        h1 {{ color: #333; }}
        .info {{ background: #f0f0f0; padding: 15px; border-radius: 5px; }}
    </style>
</head>
<body>
    <h1>Welcome to {domain}</h1>
    <div class="info">
        <p>This is a static site managed by DockLite.</p>
        <p>You can edit this file to customize your site.</p>
    </div>
</body>
</html>
"""

PHP_INDEX = """<?php
/**
 * {domain}
 * PHP site managed by DockLite
 */
?>
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{domain}</title>
</head>
<body>
    <h1>Welcome to {domain}</h1>
    <p>PHP Version: <?php echo phpversion(); ?></p>
</body>
</html>
"""

NODE_INDEX = """const http = require('http');

const hostname = '0.0.0.0';
const port = process.env.PORT || 3000;

const server = http.createServer((req, res) => {{
  res.statusCode = 200;
  res.setHeader('Content-Type', 'text/html');
  res.end('<!DOCTYPE html><html><head><title>{domain}</title></head>'
    + '<body><h1>Welcome to {domain}</h1><p>Node.js site managed by DockLite</p></body></html>');
}});

server.listen(port, hostname, () => {{
  console.log(`Server running at http://${{hostname}}:${{port}}/`);
}});
"""


def _write_new_file(site_path, name, content):
    target = os.path.join(site_path, name)
    assert_path_within_base(target, site_path)
    with open(target, 'w', encoding='utf-8') as fh:
        fh.write(content)
    return target


def create_default_index_file(site_path, domain, template_type):
    """Write starter files for a new site"""
    if template_type == 'static':
        _write_new_file(site_path, 'index.html', STATIC_INDEX.format(domain=domain))
    elif template_type == 'php':
        _write_new_file(site_path, 'index.php', PHP_INDEX.format(domain=domain))
    elif template_type == 'node':
        package_json = {
            'name': domain.replace('.', '-'),
            'version': '1.0.0',
            'description': f'Node.js site for {domain}',
            'main': 'index.js',
            'scripts': {'start': 'node index.js'},
        }
        _write_new_file(site_path, 'package.json', json.dumps(package_json, indent=2))
        _write_new_file(site_path, 'index.js', NODE_INDEX.format(domain=domain))
    else:
        raise ValueError(f'Unknown template type: {template_type}')

    logger.info(f"Created default files for {template_type} site")
