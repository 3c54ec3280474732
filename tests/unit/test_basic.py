"""Basic tests to verify project setup."""


def test_import_testnet_cluster():
    """Test that testnet_cluster package can be imported."""
    import testnet_cluster

    assert testnet_cluster.__version__ == "0.1.0"


def test_import_cli():
    """Test that CLI module can be imported."""
    from testnet_cluster import cli

    assert cli.app is not None


def test_import_models():
    """Test that models module exports the request and status models."""
    from testnet_cluster import models

    assert models.ClusterRequest is not None
    assert models.ReplicaSetStatus is not None
