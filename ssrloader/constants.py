"""Constants shared by the SSR loader, the transform pipeline and the server."""

# Names under which the binding surface is injected into executed modules
SSR_GLOBAL_KEY = "__ssr_global__"
SSR_MODULE_EXPORTS_KEY = "__ssr_exports__"
SSR_IMPORT_META_KEY = "__ssr_import_meta__"
SSR_IMPORT_KEY = "__ssr_import__"
SSR_DYNAMIC_IMPORT_KEY = "__ssr_dynamic_import__"
SSR_EXPORT_ALL_KEY = "__ssr_export_all__"

# Prefix for temporaries holding an imported namespace inside transformed code
SSR_IMPORT_TEMP_PREFIX = "__ssr_import_"

# Interop flag carried by modules authored under the namespace convention
ES_MODULE_FLAG = "__es_module__"
DEFAULT_EXPORT_KEY = "default"

# Virtual-module id handling
VALID_ID_PREFIX = "/@id/"
NULL_BYTE_PLACEHOLDER = "__x00__"

# Marker for modules that have no location on disk
BUILTIN_PREFIX = "builtin:"

# Local package directories searched by the external resolver
DEFAULT_PACKAGE_DIRS = ("__pypackages__",)

SOURCE_SUFFIX = ".py"
PACKAGE_INIT = "__init__.py"
