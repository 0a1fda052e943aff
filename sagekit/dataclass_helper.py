###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

from dataclasses import fields


def from_dict(class_name, values: dict):
    """
    Build a dataclass from a dict, ignoring keys the dataclass does not declare
    and coercing strings (as read from INI files) to the declared field type
    """
    declared = {f.name: f for f in fields(class_name) if f.init}
    filtered = {}
    for key, value in values.items():
        if key not in declared:
            continue
        field_type = declared[key].type
        if isinstance(value, str) and field_type in (int, float, "int", "float"):
            value = float(value) if field_type in (float, "float") else int(value)
        filtered[key] = value
    return class_name(**filtered)
