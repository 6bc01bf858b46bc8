"""Tests for the deckhand exception hierarchy."""

import pytest

from deckhand.core.exceptions import (
    AlreadyExistsError,
    AmbiguousSelectionError,
    ConfigError,
    CredentialError,
    DeckhandError,
    DeckhandWarning,
    ExternalToolError,
    GitError,
    InteractionRequiredError,
    InvalidProjectIdError,
    NotFoundError,
    PermissionDriftWarning,
    ProjectStateError,
    SelfUpdateError,
    UntrustedHostError,
    ValidationError,
)


class TestHierarchy:
    """Every deliberate error is a DeckhandError."""

    @pytest.mark.parametrize(
        "error_class",
        [
            ConfigError,
            ValidationError,
            InvalidProjectIdError,
            AlreadyExistsError,
            ProjectStateError,
            InteractionRequiredError,
            NotFoundError,
            AmbiguousSelectionError,
            ExternalToolError,
            GitError,
            CredentialError,
            UntrustedHostError,
            SelfUpdateError,
        ],
    )
    def test_inherits_from_deckhand_error(self, error_class: type[Exception]) -> None:
        """Each error can be caught at the single DeckhandError seam."""
        assert issubclass(error_class, DeckhandError)

    def test_validation_family(self) -> None:
        """Id, duplicate, state and interaction errors are validation errors."""
        for error_class in (InvalidProjectIdError, AlreadyExistsError, ProjectStateError, InteractionRequiredError):
            assert issubclass(error_class, ValidationError)

    def test_git_error_is_external_tool_error(self) -> None:
        """VCS failures carry the external tool details."""
        assert issubclass(GitError, ExternalToolError)

    def test_untrusted_host_is_credential_error(self) -> None:
        """Fail-closed embedding refusals are credential errors."""
        assert issubclass(UntrustedHostError, CredentialError)

    def test_permission_drift_is_a_warning(self) -> None:
        """Permission drift is a warning category, not an error."""
        assert issubclass(PermissionDriftWarning, DeckhandWarning)
        assert issubclass(PermissionDriftWarning, UserWarning)
        assert not issubclass(PermissionDriftWarning, DeckhandError)


class TestExternalToolError:
    """Test ExternalToolError attributes."""

    def test_attributes_stored(self) -> None:
        """Command, output and exit code are kept for reporting."""
        err = ExternalToolError(
            "docker compose up failed",
            command="docker compose up -d",
            output="no such service",
            returncode=1,
        )
        assert str(err) == "docker compose up failed"
        assert err.command == "docker compose up -d"
        assert err.output == "no such service"
        assert err.returncode == 1

    def test_default_attributes(self) -> None:
        """Attributes default to empty values."""
        err = GitError("boom")
        assert err.command == ""
        assert err.output == ""
        assert err.returncode is None


class TestAmbiguousSelectionError:
    """Test AmbiguousSelectionError candidates."""

    def test_candidates_stored_as_list(self) -> None:
        """Candidates are kept in listing order."""
        err = AmbiguousSelectionError("ambiguous", pattern="a*", candidates=("alpha", "alphabeta"))
        assert err.pattern == "a*"
        assert err.candidates == ["alpha", "alphabeta"]

    def test_in_all_exports(self) -> None:
        """AmbiguousSelectionError is in __all__."""
        from deckhand.core import exceptions

        assert "AmbiguousSelectionError" in exceptions.__all__
