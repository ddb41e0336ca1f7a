"""
cdrunner - package build output into an AWS CodeDeploy application revision
and drive the upload, register and deploy lifecycle.

This package provides a CLI and a small library for turning build files into
revision archives and deploying them with AWS CodeDeploy.
"""

__version__ = "0.1.0"
