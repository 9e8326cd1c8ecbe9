pytest_plugins = ["tests.fixtures.vault_fixtures"]
