"""Shared configuration, logging and integration clients"""
