"""polytext DB — Translation table, translatable mixin, queries, sessions."""
