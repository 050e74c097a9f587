"""Reference classification, refspec construction and post-fetch checks.

A requested ref is one of:

* ``refs/heads/<branch>``: fetched into ``refs/remotes/origin/<branch>``
* ``refs/pull/<n>/...``: fetched into ``refs/remotes/pull/<n>/...``
* any other ``refs/...`` (tags): fetched under its own name
* an unqualified name: may be a branch or a tag, decided after the fetch
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from repocheckout.errors import AmbiguousReferenceError, ConfigurationError
from repocheckout.models.checkout import CheckoutTarget

if TYPE_CHECKING:
    from repocheckout.git.commands import GitCommandManager

logger = logging.getLogger(__name__)

TAGS_REF_SPEC = "+refs/tags/*:refs/tags/*"
HEADS_REF_SPEC = "+refs/heads/*:refs/remotes/origin/*"

_HEADS = "refs/heads/"
_PULL = "refs/pull/"
_TAGS = "refs/tags/"
_REFS = "refs/"


def _has_prefix(ref: str, prefix: str) -> bool:
    return ref.upper().startswith(prefix.upper())


def _require_ref_or_commit(ref: str | None, commit: str | None) -> None:
    if not ref and not commit:
        raise ConfigurationError("Args ref and commit cannot both be empty")


async def get_checkout_info(
    git: GitCommandManager, ref: str | None, commit: str | None
) -> CheckoutTarget:
    """Work out what ``git checkout`` should be given after the fetch."""
    if git is None:
        raise ConfigurationError("Arg git cannot be empty")
    _require_ref_or_commit(ref, commit)

    # SHA only
    if not ref:
        return CheckoutTarget(ref=commit or "")

    if _has_prefix(ref, _HEADS):
        branch = ref[len(_HEADS):]
        return CheckoutTarget(ref=branch, start_point=f"refs/remotes/origin/{branch}")

    if _has_prefix(ref, _PULL):
        branch = ref[len(_PULL):]
        return CheckoutTarget(ref=f"refs/remotes/pull/{branch}")

    if _has_prefix(ref, _REFS):
        return CheckoutTarget(ref=ref)

    # Unqualified: a branch wins over a tag of the same name
    if await git.branch_exists(True, f"origin/{ref}"):
        return CheckoutTarget(ref=ref, start_point=f"refs/remotes/origin/{ref}")
    if await git.tag_exists(ref):
        return CheckoutTarget(ref=f"refs/tags/{ref}")
    raise AmbiguousReferenceError(f"A branch or tag with the name '{ref}' could not be found")


def get_ref_spec_for_all_history(ref: str | None, commit: str | None) -> list[str]:
    """All heads and tags, plus the pull request ref when one was asked for."""
    result = [HEADS_REF_SPEC, TAGS_REF_SPEC]
    if ref and _has_prefix(ref, _PULL):
        branch = ref[len(_PULL):]
        result.append(f"+{commit or ref}:refs/remotes/pull/{branch}")
    return result


def get_ref_spec(ref: str | None, commit: str | None) -> list[str]:
    """Targeted refspecs for a shallow or corrective fetch."""
    _require_ref_or_commit(ref, commit)
    ref = ref or ""

    if commit:
        if _has_prefix(ref, _HEADS):
            branch = ref[len(_HEADS):]
            return [f"+{commit}:refs/remotes/origin/{branch}"]
        if _has_prefix(ref, _PULL):
            branch = ref[len(_PULL):]
            return [f"+{commit}:refs/remotes/pull/{branch}"]
        if _has_prefix(ref, _TAGS):
            return [f"+{commit}:{ref}"]
        # No destination ref
        return [commit]

    if not _has_prefix(ref, _REFS):
        # The short name may be a branch or a tag; fetch both and decide at checkout
        return [
            f"+refs/heads/{ref}*:refs/remotes/origin/{ref}*",
            f"+refs/tags/{ref}*:refs/tags/{ref}*",
        ]
    if _has_prefix(ref, _HEADS):
        branch = ref[len(_HEADS):]
        return [f"+{ref}:refs/remotes/origin/{branch}"]
    if _has_prefix(ref, _PULL):
        branch = ref[len(_PULL):]
        return [f"+{ref}:refs/remotes/pull/{branch}"]
    return [f"+{ref}:{ref}"]


async def verify_ref(git: GitCommandManager, ref: str | None, commit: str | None) -> bool:
    """Check that a full-history fetch left ``ref`` at ``commit``.

    The remote tip can move between resolving the ref and finishing the fetch.
    Pull request refs are not checked: they were fetched by commit.
    """
    if git is None:
        raise ConfigurationError("Arg git cannot be empty")
    _require_ref_or_commit(ref, commit)

    # No SHA? Nothing to test
    if not commit:
        return True
    if not ref:
        return await git.sha_exists(commit)

    if _has_prefix(ref, _HEADS):
        branch = ref[len(_HEADS):]
        branch_exists = await git.branch_exists(True, f"origin/{branch}")
        if not branch_exists:
            return False
        return commit == await git.rev_parse(f"refs/remotes/origin/{branch}")

    if _has_prefix(ref, _PULL):
        return True

    if _has_prefix(ref, _TAGS):
        tag_name = ref[len(_TAGS):]
        tag_exists = await git.tag_exists(tag_name)
        if not tag_exists:
            return False
        return commit == await git.rev_parse(ref)

    logger.debug(f"Unexpected ref format '{ref}' when testing ref info")
    return True

