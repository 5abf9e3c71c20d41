# PURPOSE:
# Foundational pieces every other package depends on.
#
# WHAT'S IN THIS MODULE:
# - config.py: Environment-driven configuration, logging setup, tool settings loader
# - exceptions.py: Error taxonomy (ConfigurationError, ProcessLaunchError, ...)
