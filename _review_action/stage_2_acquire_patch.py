"""
Stage 2: Acquire Patch - PR Prompt Review

PURPOSE:
    Resolve the single unified diff the pipeline operates on. There are two
    candidate sources:

      A. WORKSPACE: a patch file handed in by an earlier workflow step
         (<GITHUB_WORKSPACE>/patch by default).
      B. FILESYSTEM: `git diff <base> <head>` run in the checkout.

    Both are always attempted. The workspace patch is authoritative:

      A ok,   B ok    -> A (equality is only logged)
      A ok,   B fails -> A, B's failure logged as a fallback note
      A fails, B ok   -> A's (empty) result, NOT B
      A fails, B fails -> PatchAcquisitionError carrying both causes

    A zero-length result from either source counts as a failure.

    The third row keeps the workspace result even though reading it failed.
    That is the observed behavior of the action and is preserved as-is; it is
    almost certainly a latent defect (see DESIGN.md).

CALLED BY:
    review_action_main.py - before any completion call is made. The size
    gate (check_patch_size) is applied right after acquisition.
"""

import logging
import subprocess
from typing import Optional, Tuple

from .review_errors import PatchAcquisitionError, PatchTooLargeError


logger = logging.getLogger(__name__)

GIT_DIFF_TIMEOUT = 120


class PatchEmptyError(ValueError):
    """A patch source produced zero bytes."""

    def __init__(self):
        super().__init__("patch empty")


def acquire_patch(
    workspace_patch_path: str,
    base_ref: str,
    head_ref: str,
    cwd: Optional[str] = None,
    timeout: int = GIT_DIFF_TIMEOUT,
) -> bytes:
    """
    Return the patch to review according to the workspace-first policy.

    Args:
        workspace_patch_path: Path of the patch file provided via the workspace
        base_ref: Base git reference for the fallback diff
        head_ref: Head git reference for the fallback diff
        cwd: Directory to run git in (the checkout)
        timeout: Seconds before `git diff` is abandoned

    Raises:
        PatchAcquisitionError: when both sources fail
    """
    patch_from_workspace, err_ws = _try(read_patch_from_workspace, workspace_patch_path)
    patch_from_fs, err_fs = _try(read_patch_from_filesystem, base_ref, head_ref, cwd, timeout)

    if err_ws is None and err_fs is None:
        if patch_from_workspace == patch_from_fs:
            logger.info("patches are equal, using the one provided via workspace")
        else:
            logger.info("patches differ, using the one provided via workspace")
        return patch_from_workspace

    if err_ws is None:
        logger.info(
            "problem getting patch from filesystem, fallback to workspace: %s", err_fs
        )
        return patch_from_workspace

    if err_fs is None:
        # TODO: return patch_from_fs here once the workspace-precedence fix is
        # approved; until then the (empty) workspace result is kept.
        logger.warning(
            "problem getting patch from workspace, keeping the workspace result: %s",
            err_ws,
        )
        return patch_from_workspace or b""

    raise PatchAcquisitionError(err_ws, err_fs)


def read_patch_from_workspace(path: str) -> bytes:
    """Load the patch file at path."""
    with open(path, "rb") as f:
        patch = f.read()

    if not patch:
        raise PatchEmptyError()
    return patch


def read_patch_from_filesystem(
    base_ref: str,
    head_ref: str,
    cwd: Optional[str] = None,
    timeout: int = GIT_DIFF_TIMEOUT,
) -> bytes:
    """Run `git diff base head` and return its output."""
    cmd = ["git", "diff", base_ref, head_ref]
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            timeout=timeout,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired as e:
        raise RuntimeError(f"problem running {' '.join(cmd)}: timed out after {timeout}s") from e
    except OSError as e:
        raise RuntimeError(f"problem running {' '.join(cmd)}: {e}") from e

    if result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise RuntimeError(
            f"problem running {' '.join(cmd)}: exit status {result.returncode}: {stderr}"
        )

    if not result.stdout:
        raise PatchEmptyError()
    return result.stdout


def check_patch_size(patch: bytes, max_size: Optional[int]) -> None:
    """Raise PatchTooLargeError when patch exceeds max_size (None disables)."""
    if max_size is not None and len(patch) > max_size:
        raise PatchTooLargeError(len(patch), max_size)


def _try(func, *args) -> Tuple[Optional[bytes], Optional[Exception]]:
    try:
        return func(*args), None
    except (OSError, RuntimeError, ValueError) as e:
        return None, e
