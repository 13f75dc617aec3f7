"""Settings classes composed into :class:`geo_resolver.core.config.settings.Settings`."""
