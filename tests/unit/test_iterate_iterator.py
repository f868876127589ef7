"""Unit tests for RepositoryIterator configuration."""

from __future__ import annotations

import typing as typ

import pytest

from factsweep.facts import ParametrizedQuery
from factsweep.github import FakeGitHubClient
from factsweep.iterate import IterateConfigError, RepositoryIterator, iterate
from factsweep.options import JudgeOptions

if typ.TYPE_CHECKING:
    from factsweep.facts import FactStore


@pytest.fixture
def iterator() -> RepositoryIterator:
    """Return an unconfigured iterator whose store is never touched."""
    return iterate(
        typ.cast("FactStore", object()),
        JudgeOptions(repositories="foo/bar", testing=True),
        github=FakeGitHubClient(),
    )


def test_setters_chain(iterator: RepositoryIterator) -> None:
    """Every setter returns the iterator itself."""
    result = (
        iterator.as_("issues_were_scanned")
        .by("(agg (gt issue $before) (min issue))")
        .sort_by("issue")
        .repeats(3)
        .since(10)
        .quota_unaware()
        .lifetime_unaware()
        .timeout_unaware()
    )

    assert result is iterator


@pytest.mark.parametrize(
    ("label", "message"),
    [
        (None, "Cannot set 'label' to None"),
        ("", "Wrong label format"),
        ("Bad", "Wrong label format"),
        ("9lives", "Wrong label format"),
        ("has-dash", "Wrong label format"),
        ("kind", "reserved"),
        ("repository", "reserved"),
    ],
)
def test_as_rejects_bad_labels(
    iterator: RepositoryIterator, label: str | None, message: str
) -> None:
    """Labels must be property names that are not marker identity fields."""
    with pytest.raises(IterateConfigError, match=message):
        iterator.as_(label)  # type: ignore[arg-type]


def test_as_is_one_shot(iterator: RepositoryIterator) -> None:
    """The label cannot be changed once set."""
    iterator.as_("first")

    with pytest.raises(IterateConfigError, match="already set"):
        iterator.as_("second")


def test_by_is_one_shot_and_rejects_none(iterator: RepositoryIterator) -> None:
    """The query is set exactly once."""
    with pytest.raises(IterateConfigError, match="None"):
        iterator.by(None)  # type: ignore[arg-type]

    iterator.by("(always)")

    with pytest.raises(IterateConfigError, match="already set"):
        iterator.by("(never)")


@pytest.mark.parametrize(
    ("query", "message"),
    [
        ("(eq issue", "Invalid query"),
        ("(frobnicate issue)", "Invalid query"),
        ("(eq issue)", "Invalid query"),
        ("(gt issue $after)", r"\$after"),
    ],
)
def test_by_validates_query_eagerly(
    iterator: RepositoryIterator, query: str, message: str
) -> None:
    """Broken templates and unknown parameters fail at configuration time."""
    with pytest.raises(IterateConfigError, match=message):
        iterator.by(query)


def test_by_accepts_parametrized_query(iterator: RepositoryIterator) -> None:
    """Pre-parsed queries are accepted as-is."""
    query = ParametrizedQuery.parse("(agg (eq repository $repository) (count))")

    assert iterator.by(query) is iterator


@pytest.mark.parametrize(
    ("prop", "message"),
    [
        (None, "None"),
        (42, "identifier"),
        ("not valid", "identifier"),
    ],
)
def test_sort_by_rejects_bad_properties(
    iterator: RepositoryIterator, prop: object, message: str
) -> None:
    """The sort property must be an identifier string."""
    with pytest.raises(IterateConfigError, match=message):
        iterator.sort_by(prop)  # type: ignore[arg-type]


def test_sort_by_is_one_shot(iterator: RepositoryIterator) -> None:
    """The sort property cannot be replaced."""
    iterator.sort_by("issue")

    with pytest.raises(IterateConfigError, match="already set"):
        iterator.sort_by("created")


@pytest.mark.parametrize(
    ("repeats", "message"),
    [
        (None, "None"),
        ("3", "must be an int"),
        (2.0, "must be an int"),
        (True, "must be an int"),
        (0, "positive"),
        (-1, "positive"),
    ],
)
def test_repeats_must_be_positive_int(
    iterator: RepositoryIterator, repeats: object, message: str
) -> None:
    """repeats accepts only positive integers."""
    with pytest.raises(IterateConfigError, match=message):
        iterator.repeats(repeats)  # type: ignore[arg-type]


def test_repeats_may_be_reassigned(iterator: RepositoryIterator) -> None:
    """Unlike the one-shot settings, repeats can be changed."""
    assert iterator.repeats(2).repeats(5) is iterator


@pytest.mark.parametrize(
    ("value", "message"), [(None, "None"), ("0", "int"), (False, "int")]
)
def test_since_must_be_int(
    iterator: RepositoryIterator, value: object, message: str
) -> None:
    """The initial cursor is an integer."""
    with pytest.raises(IterateConfigError, match=message):
        iterator.since(value)  # type: ignore[arg-type]


def test_since_is_one_shot(iterator: RepositoryIterator) -> None:
    """The initial cursor is set once."""
    iterator.since(5)

    with pytest.raises(IterateConfigError, match="already set"):
        iterator.since(6)


@pytest.mark.asyncio
async def test_over_requires_label(iterator: RepositoryIterator) -> None:
    """over refuses to run without as_."""
    iterator.by("(always)")

    with pytest.raises(IterateConfigError, match="Use 'as' first"):
        await iterator.over(lambda repo, item: 0)


@pytest.mark.asyncio
async def test_over_requires_query(iterator: RepositoryIterator) -> None:
    """over refuses to run without by."""
    iterator.as_("label")

    with pytest.raises(IterateConfigError, match="Use 'by' first"):
        await iterator.over(lambda repo, item: 0)
