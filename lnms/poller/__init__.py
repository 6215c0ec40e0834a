"""Scheduled SSH polling of provisioned devices, with a ZeroMQ message server."""