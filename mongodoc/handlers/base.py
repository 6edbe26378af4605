from ..exc import MalformedDescriptor


class DocQueryHandlerBase:
    """ Base for the handlers of DocQuery

        A handler owns a single `$directive` of the query descriptor:
        it validates the input, and then contributes its part to the Fetch.
    """

    #: The `$directive` this handler owns
    query_object_section_name = None

    def __init__(self, model, bags):
        """ Create a handler for a model

        No input is given at this point: a handler may be created, customized with settings,
        and only then receive the directive.

        Keyword arguments with defaults in subclasses are handler settings:
        HandlerSettings plucks them from the Database settings by name.

        :param model: The collection being queried
        :type model: mongodoc.model.Model
        :param bags: Foreign keys of the model's schema
        :type bags: mongodoc.bag.ForeignKeysBag
        """
        self.model = model
        self.bags = bags

        #: Was input() called? Some handlers look at each other
        self.input_received = False
        #: The raw directive value
        self.input_value = None

        #: The DocQuery that runs this handler
        self.docquery = None

    def with_docquery(self, docquery):
        """ Attach to a DocQuery

        :type docquery: mongodoc.query.DocQuery
        """
        self.docquery = docquery
        return self

    def validate_properties(self, paths, where=None):
        """ Make sure that every path exists in the schema

        :raises MalformedDescriptor: unknown field
        """
        schema = self.model.schema
        for path in paths:
            if schema.get_field(path) is None:
                raise MalformedDescriptor('Invalid field "{path}" for "{collection}" specified in {where}'.format(
                    path=path,
                    collection=self.model.collection,
                    where=where or self.query_object_section_name))

    def input_prepare_query_object(self, query_object):
        """ A chance to rewrite the descriptor before any handler gets its input

        :param query_object: The descriptor, as a dict. Modify it, and return it.
        """
        return query_object

    def input(self, qo_value):
        """ Receive the directive value and validate it

        Subclasses parse the value into public attributes.

        :param qo_value: The value of the directive, or None
        :rtype: DocQueryHandlerBase
        :raises MalformedDescriptor: invalid input
        """
        if self.input_received:
            raise RuntimeError('{}.input() can only be called once; use a new DocQuery'
                               .format(self.__class__.__name__))
        self.input_value = qo_value
        self.input_received = True
        return self

    def is_input_empty(self):
        """ Was the directive empty? """
        return not self.input_value

    def alter_fetch(self, fetch):
        """ Apply the directive to the Fetch

        :type fetch: mongodoc.query.Fetch
        """
        raise NotImplementedError()

    def get_final_input_value(self):
        """ The directive value, as the handler has understood it """
        return self.input_value
