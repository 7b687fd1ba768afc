"""Structured logging for clients, drivers, and the command line.

Log statements produce :mod:`structlog` events, which flow through the processor chain
installed by :func:`configure` before being rendered. Nothing here routes events through
the standard :mod:`logging` handlers; that module only supplies the numeric severities.

Note:
    Once :mod:`structlog` is configured, :func:`get_logger` returns a lazy proxy that
    reads the configuration the first time it is used (or bound with
    :meth:`structlog.BoundLoggerBase.bind`). A logger that has already been bound keeps
    the configuration it was bound under. Loggers requested earlier discard events.
"""

import functools
import logging
import typing
from collections.abc import Callable, MutableMapping
from typing import Any, Literal, NoReturn, Union

import orjson as json
import structlog
import structlog.contextvars
import structlog.processors
from structlog.stdlib import BoundLogger as Logger

from .exception import RemoteAdapterException

__all__ = [
    'LEVELS',
    'Logger',
    'configure',
    'get_level_num',
    'get_logger',
    'get_null_logger',
]


Event = MutableMapping[str, Any]
RenderedEvent = Union[Event, str, bytes]
Processor = Callable[[Any, str, Event], RenderedEvent]
LEVELS: list[str] = ['debug', 'info', 'warn', 'error', 'critical']
"""Accepted ``--log-level`` values, least severe first.

============ ========================================================================
Level        Emitted when
============ ========================================================================
``debug``    An operation is bound, or a driver issues a remote call.
``info``     The command line completes a remote call.
``warn``     (Unused by the library; accepted for filtering.)
``error``    The command line gives up on a remote call.
``critical`` (Unused by the library; accepted for filtering.)
============ ========================================================================
"""


def drop(_logger: Any, _method: str, _event: Event, /) -> NoReturn:
    raise structlog.DropEvent


def get_null_logger(*factory_args: Any, **context: Any) -> Logger:
    """Get a logger that discards every event."""
    logger = structlog.get_logger(
        *factory_args,
        **context,
        wrapper_class=Logger,
        processors=[drop],
    )
    return typing.cast(Logger, logger)


def get_logger(*factory_args: Any, **context: Any) -> Logger:
    """Get a lazily configured logger.

    The library stays silent in applications that never set up :mod:`structlog`: until
    :func:`configure` (or :func:`structlog.configure`) has been called, the returned
    logger is a null logger. Loggers obtained before then remain silent.

    Parameters:
        factory_args: Forwarded to the logger factory.
        context: Key-value pairs included in every event this logger emits.
    """
    if not structlog.is_configured():
        return get_null_logger(*factory_args, **context)
    logger = structlog.get_logger(*factory_args, **context, wrapper_class=Logger)
    return typing.cast(Logger, logger)


@functools.lru_cache(maxsize=16)
def get_level_num(level_name: str, /, *, default: int = logging.DEBUG) -> int:
    """Look up the numeric severity of a level name, ignoring case.

    Unknown names map to ``default``.

    Example:
        >>> get_level_num('warn')
        30
        >>> get_level_num('verbose') == logging.DEBUG
        True
    """
    level = getattr(logging, level_name.upper(), None)
    return level if isinstance(level, int) else default


def _filter_by_level(level: str, /) -> Processor:
    threshold = get_level_num(level)

    def processor(_logger: Any, method: str, event: Event, /) -> Event:
        if get_level_num(method) < threshold:
            raise structlog.DropEvent
        return event

    return processor


def _add_exc_context(_logger: Any, _method: str, event: Event, /) -> Event:
    """Merge the context of a logged :class:`RemoteAdapterException` into the event.

    Keys already present in the event are not overwritten.
    """
    exc = event.get('exc_info')
    if isinstance(exc, RemoteAdapterException):
        return {**exc.context, **event}
    return event


def configure(
    *,
    fmt: Literal['json', 'pretty'] = 'json',
    level: str = 'INFO',
) -> None:
    """Install the processor chain.

    Parameters:
        fmt: ``'json'`` writes one JSON object per event (`jsonlines
            <https://jsonlines.org/>`_), serialized with :mod:`orjson`. ``'pretty'``
            writes colored, human-readable lines with formatted tracebacks:

            .. code-block:: text

                2026-10-19T21:01:22.301992Z [debug    ] Issuing remote call    action=/api/FindAll

        level: Events below this severity are dropped.
    """
    logging.captureWarnings(True)
    if fmt == 'pretty':
        renderers: list[Processor] = [
            structlog.processors.ExceptionPrettyPrinter(),
            structlog.dev.ConsoleRenderer(pad_event=40),
        ]
        logger_factory: Any = structlog.PrintLoggerFactory()
    else:
        renderers = [structlog.processors.JSONRenderer(serializer=json.dumps)]
        logger_factory = structlog.BytesLoggerFactory()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _filter_by_level(level),
            _add_exc_context,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt='iso'),
            *renderers,
        ],
        wrapper_class=Logger,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )
