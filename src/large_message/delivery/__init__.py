"""
Module: delivery
Description: AWS Lambda entry points for SQS-triggered processing.
"""
