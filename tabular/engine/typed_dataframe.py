from typing import ClassVar, TypeVar, get_args, get_origin

import wrapt

T = TypeVar("T")


class ColBase[T]:
    """DataFrame column descriptor."""

    # set by TypedDataFrameBase subclass definition, via __set_name__
    name: str = ""
    python_type: type[T]

    def __init__(self, python_type: type[T]):
        """Store the Python data type as part of column."""
        self.python_type = python_type

    def __set_name__(self, owner, name: str):
        """Sets the column name as it was set in the class definition."""
        self.name = name


class TypedDataFrameBase(wrapt.ObjectProxy):
    """
    Base class for schema definitions for any DataFrame-like class.
    Wraps and behaves like the underlying DataFrame-like class.

    Columns declared with a ColBase annotation form the required part of the schema.
    Any other column of the wrapped frame is carried along untouched, so value
    columns of a long format table do not need to be declared up front.

    If inherited with abstract=True kwarg, subclass will behave like TypedDataFrameBase.
    """

    DataFrameModel: ClassVar[type]
    _schema_class: ClassVar[type]
    _columns: ClassVar[dict[str, type]]

    def __init__(self, df):
        # this instance will be a proxy to the given dataframe
        super().__init__(df)

    def __init_subclass__(cls, abstract: bool = False, **kwargs):
        """For classes that inherit from TypedDataFrame, extract columns from class type annotations."""
        super().__init_subclass__(**kwargs)

        if abstract:
            return

        all_annotations = {}

        for base in reversed(cls.__mro__):  # from base to derived
            if base in (object, wrapt.ObjectProxy, TypedDataFrameBase):
                continue

            # getattr handles Python 3.14 lazy annotations
            own_annotations = getattr(base, "__annotations__", {})
            if not isinstance(own_annotations, dict):
                continue

            for attr_name, annotation in own_annotations.items():
                attr_class = get_origin(annotation)
                if (
                    attr_class is not None
                    and isinstance(attr_class, type)
                    and issubclass(attr_class, ColBase)
                ):
                    col_type = get_args(annotation)[0]
                    col = attr_class(col_type)
                    col.name = attr_name
                    all_annotations[attr_name] = col_type
                    setattr(cls, attr_name, col)

        cls._columns = all_annotations
        cls._schema_class = type(
            f"{cls.__name__}Schema",
            (cls.DataFrameModel,),
            {"__annotations__": all_annotations},
        )

    @classmethod
    def column_names(cls) -> list[str]:
        """Declared column names in definition order."""
        return list(cls._columns)

    @classmethod
    def missing_columns(cls, available: list[str]) -> list[str]:
        """Declared columns that are not present in `available`."""
        present = set(available)
        return [name for name in cls._columns if name not in present]
