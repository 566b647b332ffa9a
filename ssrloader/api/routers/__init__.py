"""SSR dev server HTTP routers."""
