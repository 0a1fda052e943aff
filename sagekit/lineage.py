###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

import re
from collections import deque
from dataclasses import dataclass, field
from typing import List, Optional

from .error_helper import ValidationError
from .logging import get_logger

logger = get_logger(service="sagekit_lineage")

_first_cap_re = re.compile("(.)([A-Z][a-z]+)")
_all_cap_re = re.compile("([a-z0-9])([A-Z])")


def to_snake_case(name):
    return _all_cap_re.sub(r"\1_\2", _first_cap_re.sub(r"\1_\2", name)).lower()


def to_camel_case(name):
    return "".join(part.title() for part in name.split("_"))


def _resolve_session(session):
    if session is None:
        from .session import Session

        session = Session()
    return session


class ApiObject:
    """
    Python representation of a SageMaker API structure.

    ``from_boto`` turns an ``UpperCamelCase`` response into snake_case
    members, ``to_boto`` goes the other way.
    """

    # member name -> boto name, for names that do not follow the convention
    _custom_boto_names = {}
    # member name -> (ApiObject subclass, is_collection)
    _custom_boto_types = {}
    _boto_ignore = ("ResponseMetadata",)

    def __init__(self, **kwargs):
        self.__dict__.update(kwargs)

    def __eq__(self, other):
        if isinstance(other, type(self)):
            return _members(self) == _members(other)
        return False

    def __repr__(self):
        values = ", ".join(f"{k}={v!r}" for k, v in _members(self).items())
        return f"{type(self).__name__}({values})"

    @classmethod
    def from_boto(cls, boto_dict, **kwargs):
        if boto_dict is None:
            return None
        boto_dict = {k: v for k, v in boto_dict.items() if k not in cls._boto_ignore}
        members = _from_boto(boto_dict, cls._custom_boto_names, cls._custom_boto_types)
        members.update(kwargs)
        return cls(**members)

    @classmethod
    def to_boto(cls, obj):
        member_vars = _members(obj) if isinstance(obj, ApiObject) else dict(obj)
        return _to_boto(member_vars, cls._custom_boto_names, cls._custom_boto_types)


def _members(obj):
    return {k: v for k, v in vars(obj).items() if k != "session"}


def _from_boto(boto_dict, custom_names, custom_types):
    boto_to_member = {boto: member for member, boto in custom_names.items()}
    result = {}
    for boto_name, value in boto_dict.items():
        member = boto_to_member.get(boto_name) or to_snake_case(boto_name)
        if member in custom_types and value is not None:
            api_type, is_collection = custom_types[member]
            if is_collection:
                value = [api_type.from_boto(item) for item in value]
            else:
                value = api_type.from_boto(value)
        result[member] = value
    return result


def _to_boto(member_vars, custom_names, custom_types):
    result = {}
    for member, value in member_vars.items():
        if value is None:
            continue
        boto_name = custom_names.get(member) or to_camel_case(member)
        if member in custom_types:
            api_type, is_collection = custom_types[member]
            if is_collection:
                value = [api_type.to_boto(item) for item in value]
            else:
                value = api_type.to_boto(value)
        result[boto_name] = value
    return result


class Record(ApiObject):
    """An ApiObject backed by a SageMaker resource with create/describe/update/delete calls"""

    _boto_create_method = None
    _boto_load_method = None
    _boto_update_method = None
    _boto_delete_method = None
    _boto_update_members = ()
    _boto_delete_members = ()

    def __init__(self, session=None, **kwargs):
        self.session = session
        super().__init__(**kwargs)

    def with_boto(self, boto_dict):
        boto_dict = {k: v for k, v in boto_dict.items() if k not in self._boto_ignore}
        self.__dict__.update(
            _from_boto(boto_dict, self._custom_boto_names, self._custom_boto_types)
        )
        return self

    @classmethod
    def _construct(cls, boto_method_name, session=None, **kwargs):
        instance = cls(_resolve_session(session), **kwargs)
        return instance._invoke_api(boto_method_name, kwargs)

    def _invoke_api(self, boto_method_name, members):
        api_values = {k: getattr(self, k, None) for k in members}
        api_kwargs = self.to_boto({k: v for k, v in api_values.items() if v is not None})
        api_method = getattr(self.session.sagemaker_client, boto_method_name)
        logger.debug(f"Calling {boto_method_name}")
        return self.with_boto(api_method(**api_kwargs))

    @classmethod
    def _list(
        cls,
        boto_list_method,
        list_item_factory,
        boto_list_items_name,
        boto_next_token_name="NextToken",
        session=None,
        **kwargs,
    ):
        """Yield every item of a paginated list call"""
        session = _resolve_session(session)
        list_method = getattr(session.sagemaker_client, boto_list_method)
        list_request_kwargs = _to_boto(
            {k: v for k, v in kwargs.items() if v is not None},
            cls._custom_boto_names,
            cls._custom_boto_types,
        )
        next_token = None
        while True:
            if next_token:
                list_request_kwargs[boto_next_token_name] = next_token
            response = list_method(**list_request_kwargs)
            for item in response.get(boto_list_items_name, []):
                yield list_item_factory(item)
            next_token = response.get(boto_next_token_name)
            if not next_token:
                break

    def _set_tags(self, resource_arn, tags):
        return self.session.sagemaker_client.add_tags(ResourceArn=resource_arn, Tags=tags)["Tags"]

    def _disassociate(self, source_arn=None, destination_arn=None):
        associations = list(
            Association.list(
                source_arn=source_arn, destination_arn=destination_arn, session=self.session
            )
        )
        for summary in associations:
            Association(
                session=self.session,
                source_arn=summary.source_arn,
                destination_arn=summary.destination_arn,
            ).delete()


class ArtifactSourceType(ApiObject):
    pass


class ArtifactSource(ApiObject):
    _custom_boto_types = {"source_types": (ArtifactSourceType, True)}


class ContextSource(ApiObject):
    pass


class ActionSource(ApiObject):
    pass


class ArtifactSummary(ApiObject):
    _custom_boto_types = {"source": (ArtifactSource, False)}


class ContextSummary(ApiObject):
    _custom_boto_types = {"source": (ContextSource, False)}


class ActionSummary(ApiObject):
    _custom_boto_types = {"source": (ActionSource, False)}


class AssociationSummary(ApiObject):
    pass


class Artifact(Record):
    """A lineage artifact, e.g. a data set or model archive in S3"""

    _boto_create_method = "create_artifact"
    _boto_load_method = "describe_artifact"
    _boto_update_method = "update_artifact"
    _boto_delete_method = "delete_artifact"
    _boto_update_members = ("artifact_arn", "artifact_name", "properties", "properties_to_remove")
    _boto_delete_members = ("artifact_arn",)
    _custom_boto_types = {"source": (ArtifactSource, False)}

    @classmethod
    def create(
        cls,
        source_uri,
        artifact_type,
        artifact_name=None,
        source_types=None,
        properties=None,
        session=None,
    ):
        source = ArtifactSource(
            source_uri=source_uri,
            source_types=[ArtifactSourceType(**st) for st in source_types] if source_types else None,
        )
        return cls._construct(
            cls._boto_create_method,
            session=session,
            artifact_name=artifact_name,
            source=source,
            artifact_type=artifact_type,
            properties=properties,
        )

    @classmethod
    def load(cls, artifact_arn, session=None):
        return cls._construct(cls._boto_load_method, session=session, artifact_arn=artifact_arn)

    def save(self):
        return self._invoke_api(self._boto_update_method, self._boto_update_members)

    def delete(self, disassociate=False):
        if disassociate:
            self._disassociate(source_arn=self.artifact_arn)
            self._disassociate(destination_arn=self.artifact_arn)
        return self._invoke_api(self._boto_delete_method, self._boto_delete_members)

    def set_tags(self, tags):
        return self._set_tags(self.artifact_arn, tags)

    @classmethod
    def list(
        cls,
        source_uri=None,
        artifact_type=None,
        created_before=None,
        created_after=None,
        sort_by=None,
        sort_order=None,
        max_results=None,
        session=None,
    ):
        return cls._list(
            "list_artifacts",
            ArtifactSummary.from_boto,
            "ArtifactSummaries",
            session=session,
            source_uri=source_uri,
            artifact_type=artifact_type,
            created_before=created_before,
            created_after=created_after,
            sort_by=sort_by,
            sort_order=sort_order,
            max_results=max_results,
        )


class Context(Record):
    """A lineage context, e.g. an endpoint"""

    _boto_create_method = "create_context"
    _boto_load_method = "describe_context"
    _boto_update_method = "update_context"
    _boto_delete_method = "delete_context"
    _boto_update_members = ("context_name", "description", "properties", "properties_to_remove")
    _boto_delete_members = ("context_name",)
    _custom_boto_types = {"source": (ContextSource, False)}

    @classmethod
    def create(
        cls,
        context_name,
        source_uri,
        source_type=None,
        context_type=None,
        description=None,
        properties=None,
        session=None,
    ):
        return cls._construct(
            cls._boto_create_method,
            session=session,
            context_name=context_name,
            source=ContextSource(source_uri=source_uri, source_type=source_type),
            context_type=context_type,
            description=description,
            properties=properties,
        )

    @classmethod
    def load(cls, context_name, session=None):
        return cls._construct(cls._boto_load_method, session=session, context_name=context_name)

    def save(self):
        return self._invoke_api(self._boto_update_method, self._boto_update_members)

    def delete(self, disassociate=False):
        if disassociate:
            self._disassociate(source_arn=self.context_arn)
            self._disassociate(destination_arn=self.context_arn)
        return self._invoke_api(self._boto_delete_method, self._boto_delete_members)

    def set_tags(self, tags):
        return self._set_tags(self.context_arn, tags)

    @classmethod
    def list(
        cls,
        source_uri=None,
        context_type=None,
        created_after=None,
        created_before=None,
        sort_by=None,
        sort_order=None,
        max_results=None,
        session=None,
    ):
        return cls._list(
            "list_contexts",
            ContextSummary.from_boto,
            "ContextSummaries",
            session=session,
            source_uri=source_uri,
            context_type=context_type,
            created_after=created_after,
            created_before=created_before,
            sort_by=sort_by,
            sort_order=sort_order,
            max_results=max_results,
        )


class Action(Record):
    """A lineage action, e.g. a model deployment"""

    _boto_create_method = "create_action"
    _boto_load_method = "describe_action"
    _boto_update_method = "update_action"
    _boto_delete_method = "delete_action"
    _boto_update_members = ("action_name", "description", "status", "properties", "properties_to_remove")
    _boto_delete_members = ("action_name",)
    _custom_boto_types = {"source": (ActionSource, False)}

    @classmethod
    def create(
        cls,
        action_name,
        source_uri,
        source_type=None,
        action_type=None,
        description=None,
        status=None,
        properties=None,
        session=None,
    ):
        return cls._construct(
            cls._boto_create_method,
            session=session,
            action_name=action_name,
            source=ActionSource(source_uri=source_uri, source_type=source_type),
            action_type=action_type,
            description=description,
            status=status,
            properties=properties,
        )

    @classmethod
    def load(cls, action_name, session=None):
        return cls._construct(cls._boto_load_method, session=session, action_name=action_name)

    def save(self):
        return self._invoke_api(self._boto_update_method, self._boto_update_members)

    def delete(self, disassociate=False):
        if disassociate:
            self._disassociate(source_arn=self.action_arn)
            self._disassociate(destination_arn=self.action_arn)
        return self._invoke_api(self._boto_delete_method, self._boto_delete_members)

    def set_tags(self, tags):
        return self._set_tags(self.action_arn, tags)

    @classmethod
    def list(
        cls,
        source_uri=None,
        action_type=None,
        created_after=None,
        created_before=None,
        sort_by=None,
        sort_order=None,
        max_results=None,
        session=None,
    ):
        return cls._list(
            "list_actions",
            ActionSummary.from_boto,
            "ActionSummaries",
            session=session,
            source_uri=source_uri,
            action_type=action_type,
            created_after=created_after,
            created_before=created_before,
            sort_by=sort_by,
            sort_order=sort_order,
            max_results=max_results,
        )


class Association(Record):
    """A directed edge between two lineage entities"""

    _boto_create_method = "add_association"
    _boto_delete_method = "delete_association"
    _boto_delete_members = ("source_arn", "destination_arn")

    @classmethod
    def create(cls, source_arn, destination_arn, association_type=None, session=None):
        return cls._construct(
            cls._boto_create_method,
            session=session,
            source_arn=source_arn,
            destination_arn=destination_arn,
            association_type=association_type,
        )

    def delete(self):
        return self._invoke_api(self._boto_delete_method, self._boto_delete_members)

    def set_tags(self, tags):
        # associations are not taggable resources
        raise ValidationError("Tagging is not supported for associations")

    @classmethod
    def list(
        cls,
        source_arn=None,
        source_type=None,
        destination_arn=None,
        destination_type=None,
        association_type=None,
        created_after=None,
        created_before=None,
        sort_by=None,
        sort_order=None,
        max_results=None,
        session=None,
    ):
        return cls._list(
            "list_associations",
            AssociationSummary.from_boto,
            "AssociationSummaries",
            session=session,
            source_arn=source_arn,
            source_type=source_type,
            destination_arn=destination_arn,
            destination_type=destination_type,
            association_type=association_type,
            created_after=created_after,
            created_before=created_before,
            sort_by=sort_by,
            sort_order=sort_order,
            max_results=max_results,
        )


# ------------------------------------------------------------------ queries

ASCENDANTS = "Ascendants"
DESCENDANTS = "Descendants"


@dataclass(frozen=True)
class LineageEdge:
    source_arn: str
    destination_arn: str
    association_type: Optional[str] = None


@dataclass(frozen=True)
class LineageVertex:
    arn: str
    lineage_source: Optional[str] = None

    @property
    def lineage_entity(self):
        """Entity kind parsed from the ARN: artifact, context, action, ..."""
        resource = self.arn.split(":", 5)[-1]
        return resource.split("/", 1)[0]


@dataclass
class LineageQueryResult:
    edges: List[LineageEdge] = field(default_factory=list)
    vertices: List[LineageVertex] = field(default_factory=list)


class LineageQuery:
    """
    Breadth first walk of the lineage graph through ListAssociations.
    Every vertex is expanded at most once, so cycles terminate.
    """

    def __init__(self, session=None):
        self.session = _resolve_session(session)

    def upstream(self, start_arn, max_depth=10, include_types=None):
        return self._walk(start_arn, ASCENDANTS, max_depth, include_types)

    def downstream(self, start_arn, max_depth=10, include_types=None):
        return self._walk(start_arn, DESCENDANTS, max_depth, include_types)

    def _neighbors(self, arn, direction):
        if direction == ASCENDANTS:
            for summary in Association.list(destination_arn=arn, session=self.session):
                yield summary, summary.source_arn, getattr(summary, "source_type", None)
        else:
            for summary in Association.list(source_arn=arn, session=self.session):
                yield summary, summary.destination_arn, getattr(summary, "destination_type", None)

    def _walk(self, start_arn, direction, max_depth, include_types):
        if max_depth < 0:
            raise ValidationError(f"max_depth must be non-negative, got {max_depth}")
        result = LineageQueryResult()
        visited = {start_arn}
        queue = deque([(start_arn, 0)])
        while queue:
            arn, depth = queue.popleft()
            if depth >= max_depth:
                continue
            for summary, neighbor, neighbor_type in self._neighbors(arn, direction):
                result.edges.append(
                    LineageEdge(
                        summary.source_arn,
                        summary.destination_arn,
                        getattr(summary, "association_type", None),
                    )
                )
                if neighbor in visited:
                    continue
                visited.add(neighbor)
                if include_types is None or neighbor_type in include_types:
                    result.vertices.append(LineageVertex(neighbor, neighbor_type))
                queue.append((neighbor, depth + 1))
        logger.debug(
            f"Lineage walk from {start_arn}: {len(result.vertices)} vertices, {len(result.edges)} edges"
        )
        return result


class EndpointContext(Context):
    """The lineage context SageMaker creates for an endpoint"""

    @classmethod
    def for_endpoint(cls, endpoint_name, session=None):
        """Load the context whose source is the endpoint, or None if there is none"""
        session = _resolve_session(session)
        endpoint_arn = session.describe_endpoint(endpoint_name)["EndpointArn"]
        contexts = list(Context.list(source_uri=endpoint_arn, session=session))
        if not contexts:
            logger.warning(f"No lineage context found for endpoint {endpoint_name}")
            return None
        return cls.load(contexts[0].context_name, session=session)

    def models(self):
        """Associations whose destination is a model deployed by this endpoint"""
        model_list = []
        for endpoint_action in Association.list(
            source_arn=self.context_arn, destination_type="ModelDeployment", session=self.session
        ):
            model_list.extend(
                Association.list(
                    source_arn=endpoint_action.destination_arn,
                    destination_type="Model",
                    session=self.session,
                )
            )
        return model_list

    def dataset_artifacts(self, max_depth=10):
        """Data set artifacts upstream of the endpoint"""
        result = LineageQuery(self.session).upstream(
            self.context_arn, max_depth=max_depth, include_types=("DataSet",)
        )
        return [Artifact.load(vertex.arn, session=self.session) for vertex in result.vertices]
