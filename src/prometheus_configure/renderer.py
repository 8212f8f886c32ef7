"""
Template rendering with a safe swap-in of the live configuration file.

Templates live in the templates directory as `<basename>.in` and carry
`%%NAME%%` placeholders. A render:

1. checks every requested parameter has a placeholder in the template,
2. substitutes every occurrence of each placeholder,
3. refuses to write anything if a `%%` delimiter is still present,
4. writes `<live>.new` and promotes it only if the live file is missing or
   differs, keeping the previous live file as `<live>.bak`.

The caller passes a list that acts as the change flag for its configuration
group; the live path is appended to it whenever the file on disk changed.
"""

import filecmp
import logging
import os
import shutil
from typing import List, Mapping, Optional, Sequence

from .errors import TemplateError
from .structured_events import ActionResult, StructuredEventLogger

logger = logging.getLogger(os.getenv("LOGGER_NAME", "PROMETHEUS_CONFIGURE"))

DELIMITER = "%%"
TEMPLATE_SUFFIX = ".in"
STAGING_SUFFIX = ".new"
BACKUP_SUFFIX = ".bak"


def placeholder(name: str) -> str:
    return f"{DELIMITER}{name}{DELIMITER}"


def template_path(live_path: str, templates_dir: str) -> str:
    return os.path.join(templates_dir, os.path.basename(live_path) + TEMPLATE_SUFFIX)


def substitute(template: str, params: Mapping[str, str], names: Sequence[str],
               template_name: str = "<template>") -> str:
    """
    Substitute `names` into `template` text.

    Raises:
        TemplateError: If a name has no placeholder in the template, has no
            value in `params`, or if a delimiter survives substitution.
    """
    rendered = template
    for name in names:
        if placeholder(name) not in template:
            raise TemplateError(f"parameter {name} not found in template {template_name}")
        if name not in params or params[name] is None:
            raise TemplateError(f"no value for parameter {name} (template {template_name})")
        rendered = rendered.replace(placeholder(name), str(params[name]))

    if DELIMITER in rendered:
        line_no = rendered[:rendered.index(DELIMITER)].count("\n") + 1
        raise TemplateError(
            f"rendered {template_name} still contains '{DELIMITER}' at line {line_no}; "
            f"a parameter is missing from the render call or the template uses the delimiter"
        )
    return rendered


def render_config(live_path: str,
                  changed: List[str],
                  params: Mapping[str, str],
                  names: Sequence[str],
                  templates_dir: str,
                  structured_logger: Optional[StructuredEventLogger] = None) -> bool:
    """
    Render the template for `live_path` and swap it in if it differs.

    Args:
        live_path: Path of the live configuration file.
        changed: Change flag for this file's configuration group. `live_path`
            is appended when the live file is created or replaced.
        params: Resolved configuration parameters.
        names: Parameter names this template must consume.
        templates_dir: Directory holding `<basename>.in` templates.
        structured_logger: Optional structured event sink.

    Returns:
        bool: True if the live file changed on disk.

    Raises:
        TemplateError: On template/parameter mismatch or a missing template.
    """
    template_file = template_path(live_path, templates_dir)
    try:
        with open(template_file, 'r', encoding='utf-8', newline='') as f:
            template = f.read()
    except OSError as e:
        raise TemplateError(f"could not read template {template_file}: {e}") from e

    try:
        rendered = substitute(template, params, names, template_name=template_file)
    except TemplateError as e:
        if structured_logger:
            structured_logger.log_config_render(live_path, template_file, ActionResult.FAILURE,
                                                error_message=str(e))
        raise

    staging = live_path + STAGING_SUFFIX
    backup = live_path + BACKUP_SUFFIX
    os.makedirs(os.path.dirname(live_path) or '.', exist_ok=True)
    with open(staging, 'w', encoding='utf-8', newline='') as f:
        f.write(rendered)

    if not os.path.exists(live_path):
        os.replace(staging, live_path)
        logger.info(f"Wrote {live_path} (first render)")
        backup = None
    elif filecmp.cmp(staging, live_path, shallow=False):
        os.unlink(staging)
        logger.debug(f"{live_path} unchanged")
        if structured_logger:
            structured_logger.log_config_render(live_path, template_file, ActionResult.NO_CHANGE)
        return False
    else:
        shutil.copy2(live_path, backup)
        os.replace(staging, live_path)
        logger.info(f"Updated {live_path} (previous version kept as {backup})")

    changed.append(live_path)
    if structured_logger:
        structured_logger.log_config_render(live_path, template_file, ActionResult.SUCCESS,
                                            backup=backup)
    return True
