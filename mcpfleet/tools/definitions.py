from typing import List, Dict, Any

GITHUB_TOOLS_SCHEMAS: List[Dict[str, Any]] = [
    {
        "name": "create_issue",
        "description": "Create a new issue in a GitHub repository",
        "inputSchema": {
            "type": "object",
            "properties": {
                "owner": {"type": "string", "description": "Repository owner"},
                "repo": {"type": "string", "description": "Repository name"},
                "title": {"type": "string", "description": "Issue title"},
                "body": {"type": "string", "description": "Issue body"},
                "labels": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Issue labels"
                }
            },
            "required": ["owner", "repo", "title", "body"]
        }
    },
    {
        "name": "search_repos",
        "description": "Search for GitHub repositories",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"},
                "sort": {
                    "type": "string",
                    "enum": ["stars", "forks", "updated"],
                    "default": "stars",
                    "description": "Sort criteria"
                },
                "per_page": {
                    "type": "number",
                    "minimum": 1,
                    "maximum": 100,
                    "default": 10,
                    "description": "Results per page"
                }
            },
            "required": ["query"]
        }
    },
    {
        "name": "list_repo_contents",
        "description": "List contents of a GitHub repository",
        "inputSchema": {
            "type": "object",
            "properties": {
                "owner": {"type": "string", "description": "Repository owner"},
                "repo": {"type": "string", "description": "Repository name"},
                "path": {"type": "string", "description": "Path within repository (optional)"}
            },
            "required": ["owner", "repo"]
        }
    },
]

SEARCH_TOOLS_SCHEMAS: List[Dict[str, Any]] = [
    {
        "name": "search_in_files",
        "description": "Search for a pattern in files within a directory",
        "inputSchema": {
            "type": "object",
            "properties": {
                "directory": {"type": "string", "description": "Directory to search in"},
                "pattern": {"type": "string", "description": "Pattern to search for"},
                "fileTypes": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "File extensions to search in (e.g., [\"ts\", \"js\"])"
                }
            },
            "required": ["directory", "pattern"]
        }
    },
    {
        "name": "find_files",
        "description": "Find files matching a glob pattern",
        "inputSchema": {
            "type": "object",
            "properties": {
                "directory": {"type": "string", "description": "Directory to search in"},
                "pattern": {"type": "string", "description": "Glob pattern (e.g., \"**/*.ts\")"}
            },
            "required": ["directory", "pattern"]
        }
    },
    {
        "name": "find_code_definitions",
        "description": "Find code definitions (classes, functions, etc.)",
        "inputSchema": {
            "type": "object",
            "properties": {
                "directory": {"type": "string", "description": "Directory to search in"},
                "fileTypes": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "File extensions to search in (e.g., [\"ts\", \"js\"])"
                }
            },
            "required": ["directory", "fileTypes"]
        }
    },
]


def schema_for(schemas: List[Dict[str, Any]], name: str) -> Dict[str, Any]:
    for schema in schemas:
        if schema["name"] == name:
            return schema
    raise KeyError(name)
