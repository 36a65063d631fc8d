#!/usr/bin/env python3
"""
Shared utilities for the SMTP relay.
Contains common functions used across multiple modules.
"""

import os
import logging
import jinja2
from typing import Dict, Any, Optional

logger = logging.getLogger('utils')

def render_template(template_path: str, output_path: str, context: Dict[str, Any],
                    mode: Optional[int] = None) -> bool:
    """
    Render a Jinja2 template to a file.

    Args:
        template_path: Path to the template file
        output_path: Path where the rendered file should be saved
        context: Dictionary with variables to use in the template
        mode: Permission bits applied to the output file, if given

    Returns:
        True if the output file was (re)written
    """
    try:
        template_dir = os.path.dirname(template_path)
        template_file = os.path.basename(template_path)

        template_loader = jinja2.FileSystemLoader(searchpath=template_dir)
        template_env = jinja2.Environment(loader=template_loader, keep_trailing_newline=True)
        template = template_env.get_template(template_file)
        output_text = template.render(**context)

        # Check if the file exists and content is different
        content_changed = True
        if os.path.exists(output_path):
            with open(output_path, 'r') as f:
                if f.read() == output_text:
                    content_changed = False

        if content_changed:
            write_file(output_path, output_text, mode)
            logger.info(f"Generated {output_path}")
        else:
            logger.debug(f"No changes to {output_path}, skipping")
            if mode is not None:
                os.chmod(output_path, mode)
        return content_changed
    except Exception as e:
        logger.error(f"Error rendering template {template_path} to {output_path}: {e}")
        raise

def write_file(path: str, content: str, mode: Optional[int] = None) -> None:
    """
    Write content to a file, creating its directory.

    When a mode is given the file is created with those permissions.
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    if mode is None:
        with open(path, 'w') as f:
            f.write(content)
        return

    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, 'w') as f:
        f.write(content)
    os.chmod(path, mode)

def remove_file(path: str) -> None:
    """Delete a file if it exists."""
    try:
        os.remove(path)
        logger.debug(f"Removed {path}")
    except FileNotFoundError:
        pass
