"""Left-to-right walk over one page's command list.

Extraction and injection share this walk so that both visit the same
commands with the same grouping.  During injection each handler first
re-runs its extraction at the current position, then patches the range;
the walk advances by the number of commands the range now holds.
"""

import logging
from dataclasses import dataclass, field

from .context import ExtractionContext, InjectionStep
from .errors import InvalidCommand, PathNotFound, UnsupportedCode
from .event_codes import CodeRole, classify, role_of
from .handlers import HandlerRegistry
from .settings import ExtractionOptions, InjectionOptions
from .translation_path import TranslationPath

log = logging.getLogger(__name__)


@dataclass
class PageExtraction:
    units: list = field(default_factory=list)
    warnings: list = field(default_factory=list)


@dataclass
class PageInjection:
    applied: int = 0
    not_found: int = 0
    warnings: list = field(default_factory=list)


def _dispatch(commands: list, index: int, origin: int, list_path: TranslationPath,
              registry: HandlerRegistry, options: ExtractionOptions, warnings: list):
    """Find the handler for ``commands[index]``.

    Returns None when the command should be stepped over (unknown code,
    no handler, or a malformed record, which is reported in ``warnings``).
    """
    cmd = commands[index]
    path = list_path.append_index(origin)
    if not isinstance(cmd, dict):
        warnings.append(f"{path}: command is not an object")
        return None
    try:
        code = classify(cmd.get("code"))
    except TypeError as e:
        warnings.append(f"{path}: {e}")
        return None

    handler = registry.get(int(code))
    if handler is None:
        if options.strict and role_of(code) is CodeRole.UNKNOWN:
            raise UnsupportedCode(int(code), path)
        return None
    return handler


def extract_page(commands: list, list_path: TranslationPath, context: ExtractionContext,
                 registry: HandlerRegistry, options: ExtractionOptions) -> PageExtraction:
    """Collect translation units from one command list."""
    out = PageExtraction()
    i = 0
    while i < len(commands):
        handler = _dispatch(commands, i, i, list_path, registry, options, out.warnings)
        if handler is None:
            i += 1
            continue
        try:
            result = handler.extract(commands, i, i, list_path, context, options)
        except InvalidCommand as e:
            log.debug("Skipping malformed command: %s", e)
            out.warnings.append(str(e))
            i += 1
            continue
        out.units.extend(result.units)
        out.warnings.extend(result.warnings)
        context.apply(result)
        i += result.consumed
    return out


def inject_page(commands: list, list_path: TranslationPath, context: ExtractionContext,
                registry: HandlerRegistry, translations: dict,
                options: ExtractionOptions, inject_options: InjectionOptions) -> PageInjection:
    """Write translations into one command list in place."""
    out = PageInjection()
    i = 0
    shift = 0  # current position minus position at extraction time
    while i < len(commands):
        origin = i - shift
        handler = _dispatch(commands, i, origin, list_path, registry, options, out.warnings)
        if handler is None:
            i += 1
            continue
        try:
            result = handler.extract(commands, i, origin, list_path, context, options)
        except InvalidCommand as e:
            log.debug("Skipping malformed command: %s", e)
            out.warnings.append(str(e))
            i += 1
            continue

        try:
            step = handler.inject(commands, i, origin, list_path, result,
                                  translations, inject_options)
        except PathNotFound as e:
            log.debug("Injection target missing: %s", e)
            step = InjectionStep(produced=result.consumed,
                                 not_found=len(result.units), warnings=[str(e)])

        out.applied += step.applied
        out.not_found += step.not_found
        out.warnings.extend(step.warnings)
        context.apply(result)
        i += step.produced
        shift += step.produced - result.consumed
    return out
