import linecache
import os
import sys

from ._scrubber import scrub_vars

CONTEXT_LINES = 5


def _is_in_app(filename):
    return "site-packages" not in filename and "/lib/python" not in filename


def _frame_dict(frame, lineno):
    filename = frame.f_code.co_filename
    all_lines = linecache.getlines(filename)
    start = max(0, lineno - 1 - CONTEXT_LINES)
    end = min(len(all_lines), lineno + CONTEXT_LINES)
    return {
        "filename": os.path.basename(filename),
        "abs_path": filename,
        "module": frame.f_globals.get("__name__"),
        "function": frame.f_code.co_name,
        "lineno": lineno,
        "context_line": linecache.getline(filename, lineno).rstrip("\n"),
        "pre_context": [l.rstrip("\n") for l in all_lines[start : lineno - 1]],
        "post_context": [l.rstrip("\n") for l in all_lines[lineno:end]],
        "vars": scrub_vars(frame.f_locals),
        "in_app": _is_in_app(filename),
    }


def extract_frames(exc):
    """Walk exc.__traceback__ and return frame dicts, oldest call first."""
    frames = []
    tb = exc.__traceback__
    while tb is not None:
        frames.append(_frame_dict(tb.tb_frame, tb.tb_lineno))
        tb = tb.tb_next
    return frames


def current_frames(skip=0):
    """Capture the caller's stack, oldest call first.

    Used for errors that were created but never raised, so they carry no
    traceback. ``skip`` drops that many innermost frames above the caller.
    """
    frames = []
    frame = sys._getframe(skip + 1)
    while frame is not None:
        frames.append(_frame_dict(frame, frame.f_lineno))
        frame = frame.f_back
    frames.reverse()
    return frames


def extract_exception_chain(exc):
    """Walk __cause__ and __context__ to build the full exception chain.

    Returns a list of dicts ordered outermost-first:
      - Index 0: the raised exception, chain_type=None
      - Index 1+: causes/contexts, chain_type="cause" or "context"
    """
    chain = []
    seen = set()
    current = exc
    chain_type = None

    while current is not None and id(current) not in seen:
        seen.add(id(current))

        try:
            frames = extract_frames(current)
        except Exception:
            frames = []

        chain.append(
            {
                "type": type(current).__name__,
                "module": type(current).__module__,
                "value": str(current),
                "stacktrace": {"frames": frames},
                "chain_type": chain_type,
            }
        )

        if current.__cause__ is not None:
            current = current.__cause__
            chain_type = "cause"
        elif not getattr(current, "__suppress_context__", False) and current.__context__ is not None:
            current = current.__context__
            chain_type = "context"
        else:
            break

    return chain
