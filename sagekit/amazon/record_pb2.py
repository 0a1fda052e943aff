###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

"""Message classes for the aialgs.data schema described in record.proto.

The file descriptor is assembled here with descriptor_pb2 and registered in a
private pool, so no protoc step is needed and an installed copy of the same
schema cannot collide with this one.
"""

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

PACKAGE = "aialgs.data"

_F = descriptor_pb2.FieldDescriptorProto
_PACKED = descriptor_pb2.FieldOptions(packed=True)


def _tensor(file_proto, name, value_type):
    message = file_proto.message_type.add(name=name)
    message.field.add(
        name="values", number=1, label=_F.LABEL_REPEATED, type=value_type, options=_PACKED
    )
    message.field.add(
        name="keys", number=2, label=_F.LABEL_REPEATED, type=_F.TYPE_UINT64, options=_PACKED
    )
    message.field.add(
        name="shape", number=3, label=_F.LABEL_REPEATED, type=_F.TYPE_UINT64, options=_PACKED
    )


def _map_field(message, name, number, entry_name, value_type_name):
    entry = message.nested_type.add(name=entry_name)
    entry.options.map_entry = True
    entry.field.add(name="key", number=1, label=_F.LABEL_OPTIONAL, type=_F.TYPE_STRING)
    entry.field.add(
        name="value",
        number=2,
        label=_F.LABEL_OPTIONAL,
        type=_F.TYPE_MESSAGE,
        type_name=value_type_name,
    )
    message.field.add(
        name=name,
        number=number,
        label=_F.LABEL_REPEATED,
        type=_F.TYPE_MESSAGE,
        type_name=f".{PACKAGE}.{message.name}.{entry_name}",
    )


def _build_file():
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="sagekit/amazon/record.proto", package=PACKAGE, syntax="proto2"
    )
    _tensor(file_proto, "Float32Tensor", _F.TYPE_FLOAT)
    _tensor(file_proto, "Float64Tensor", _F.TYPE_DOUBLE)
    _tensor(file_proto, "Int32Tensor", _F.TYPE_INT32)

    raw = file_proto.message_type.add(name="Bytes")
    raw.field.add(name="value", number=1, label=_F.LABEL_REPEATED, type=_F.TYPE_BYTES)
    raw.field.add(name="content_type", number=2, label=_F.LABEL_OPTIONAL, type=_F.TYPE_STRING)

    value = file_proto.message_type.add(name="Value")
    value.oneof_decl.add(name="value")
    for field_name, number, type_name in (
        ("float32_tensor", 2, "Float32Tensor"),
        ("float64_tensor", 3, "Float64Tensor"),
        ("int32_tensor", 7, "Int32Tensor"),
        ("bytes", 9, "Bytes"),
    ):
        value.field.add(
            name=field_name,
            number=number,
            label=_F.LABEL_OPTIONAL,
            type=_F.TYPE_MESSAGE,
            type_name=f".{PACKAGE}.{type_name}",
            oneof_index=0,
        )

    record = file_proto.message_type.add(name="Record")
    _map_field(record, "features", 1, "FeaturesEntry", f".{PACKAGE}.Value")
    _map_field(record, "label", 2, "LabelEntry", f".{PACKAGE}.Value")
    record.field.add(name="uid", number=3, label=_F.LABEL_OPTIONAL, type=_F.TYPE_STRING)
    record.field.add(name="metadata", number=4, label=_F.LABEL_OPTIONAL, type=_F.TYPE_STRING)
    record.field.add(
        name="configuration", number=5, label=_F.LABEL_OPTIONAL, type=_F.TYPE_STRING
    )
    return file_proto


_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(_build_file().SerializeToString())


def _message_class(name):
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"{PACKAGE}.{name}"))


Float32Tensor = _message_class("Float32Tensor")
Float64Tensor = _message_class("Float64Tensor")
Int32Tensor = _message_class("Int32Tensor")
Bytes = _message_class("Bytes")
Value = _message_class("Value")
Record = _message_class("Record")

__all__ = ["Float32Tensor", "Float64Tensor", "Int32Tensor", "Bytes", "Value", "Record"]
