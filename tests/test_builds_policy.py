"""Tests for the distribution/architecture support policy."""

from debmatrix.builds.policy import DistributionPolicy


class TestDistributionPolicy:
    """Tests for DistributionPolicy."""

    def test_unlisted_architecture_supported_everywhere(self):
        """Architectures missing from both tables are built for every distribution."""
        policy = DistributionPolicy(builtin={}, overrides={})

        assert policy.is_supported("amd64", "bookworm")
        assert policy.is_supported("amd64", "sid")

    def test_builtin_table(self):
        """The builtin table should restrict listed architectures."""
        policy = DistributionPolicy(builtin={"i386": ["bookworm", "trixie"]})

        assert policy.is_supported("i386", "trixie")
        assert not policy.is_supported("i386", "forky")

    def test_override_wins(self):
        """A project override should replace the builtin entry."""
        policy = DistributionPolicy(
            builtin={"i386": ["bookworm", "trixie"]},
            overrides={"i386": ["forky"]},
        )

        assert policy.is_supported("i386", "forky")
        assert not policy.is_supported("i386", "bookworm")

    def test_override_can_restrict_unlisted(self):
        """An override can restrict an architecture the builtin table allows."""
        policy = DistributionPolicy(builtin={}, overrides={"amd64": ["bookworm"]})

        assert policy.supported_distributions("amd64", ["bookworm", "trixie"]) == [
            "bookworm"
        ]

    def test_default_builtin_table(self):
        """The shipped table should restrict armel to older generations."""
        policy = DistributionPolicy()

        assert policy.is_supported("armel", "bookworm")
        assert not policy.is_supported("armel", "forky")
        assert policy.is_supported("amd64", "forky")

    def test_reason_names_source(self):
        """The skip reason should say which table decided."""
        policy = DistributionPolicy(
            builtin={"i386": ["bookworm"]}, overrides={"armel": ["bookworm"]}
        )

        assert "Debian support table" in policy.reason("i386", "sid")
        assert "project override" in policy.reason("armel", "sid")
