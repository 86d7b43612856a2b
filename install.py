#!/usr/bin/env python3
"""
MCP Lab Interactive Installer

Provisions the classroom lab on Azure and writes the student's access file.

Deployment Stages:
  1. PROVIDERS: Register Container Apps / Registry (and optional service) providers
  2. REGISTRY: Create or reuse the lab's container registry
  3. IMAGE: Build the MCP server image in the registry unless the tag exists
  4. DEPLOY: Deploy the Bicep template with a fresh API key
"""

import sys

from labdeploy.cli import main

if __name__ == '__main__':
    sys.exit(main())
