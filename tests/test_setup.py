"""Test that the project setup is working correctly."""

import staking_indexer


def test_version() -> None:
    """Test that version is defined."""
    assert staking_indexer.__version__ == "0.1.0"


def test_import_modules() -> None:
    """Test that all submodules can be imported."""
    from staking_indexer import chain, indexer, parser, pipeline, scheduler, storage

    # Just verify imports work
    assert chain is not None
    assert indexer is not None
    assert parser is not None
    assert pipeline is not None
    assert scheduler is not None
    assert storage is not None
