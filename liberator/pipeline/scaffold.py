"""Replacement infrastructure files injected into liberated projects."""

import json
import re
from datetime import datetime, timezone

MANIFEST_NAME = "liberator.config.json"
MANIFEST_VERSION = "1.0.0"

SCAFFOLD_FILES = ("Dockerfile", "docker-compose.yml", "deploy.sh", MANIFEST_NAME)

DOCKERFILE_TEMPLATE = """\
# {project_name} - Sovereign Dockerfile
FROM node:20-alpine AS deps
WORKDIR /app
COPY package*.json ./
RUN npm ci --legacy-peer-deps

FROM node:20-alpine AS builder
WORKDIR /app
COPY --from=deps /app/node_modules ./node_modules
COPY . .
RUN npm run build

FROM nginx:alpine
COPY --from=builder /app/dist /usr/share/nginx/html
EXPOSE 80
CMD ["nginx", "-g", "daemon off;"]
"""

COMPOSE_TEMPLATE = """\
services:
  app:
    build: .
    container_name: {container_name}
    restart: unless-stopped
    ports:
      - "80:80"
    environment:
      - NODE_ENV=production
"""

DEPLOY_TEMPLATE = """\
#!/bin/bash
set -e
echo "Deploying {project_name}..."
docker compose up -d --build
echo "Deployed!"
"""


def container_name(project_name: str) -> str:
    """Docker-safe container name derived from the project name."""
    return re.sub(r"[^a-z0-9]", "-", project_name.lower())


def generate(project_name: str, generated_at: datetime | None = None) -> dict[str, str]:
    """Build the scaffold files for project_name.

    Args:
        project_name: Validated project name
        generated_at: Timestamp written to the manifest, defaults to now

    Returns:
        Mapping of scaffold file name -> content
    """
    generated_at = generated_at or datetime.now(timezone.utc)
    manifest = {
        "version": MANIFEST_VERSION,
        "name": project_name,
        "liberated_at": generated_at.isoformat(),
        "sovereign": True,
    }
    return {
        "Dockerfile": DOCKERFILE_TEMPLATE.format(project_name=project_name),
        "docker-compose.yml": COMPOSE_TEMPLATE.format(container_name=container_name(project_name)),
        "deploy.sh": DEPLOY_TEMPLATE.format(project_name=project_name),
        MANIFEST_NAME: json.dumps(manifest, indent=2),
    }
